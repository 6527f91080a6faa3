# Overview: Flask API routes for the catalogue (categories, suppliers, medicines).

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import PharmacyError, error_response
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import batch_service, catalog_service


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")
medicines_bp = Blueprint("medicines", __name__, url_prefix="/api/medicines")

MANAGERS = (ROLE_OWNER, ROLE_MANAGER)


# =============================================================================
# Categories
# =============================================================================

@categories_bp.get("")
@require_auth
def list_categories_route():
    categories = catalog_service.list_categories()
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@categories_bp.post("")
@require_auth
@require_role(*MANAGERS)
def create_category_route():
    try:
        category = catalog_service.create_category(request.get_json() or {})
        return jsonify({"category": category.to_dict()}), 201
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.put("/<int:category_id>")
@require_auth
@require_role(*MANAGERS)
def update_category_route(category_id: int):
    try:
        category = catalog_service.update_category(category_id, request.get_json() or {})
        return jsonify({"category": category.to_dict()}), 200
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_role(*MANAGERS)
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(category_id)
        return jsonify({"message": "Category deleted"}), 200
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# Suppliers
# =============================================================================

@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    suppliers = catalog_service.list_suppliers(include_inactive=include_inactive)
    return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    try:
        supplier = catalog_service.get_supplier(supplier_id)
        return jsonify({"supplier": supplier.to_dict()}), 200
    except PharmacyError as e:
        return error_response(e)


@suppliers_bp.post("")
@require_auth
@require_role(*MANAGERS)
def create_supplier_route():
    try:
        supplier = catalog_service.create_supplier(request.get_json() or {})
        return jsonify({"supplier": supplier.to_dict()}), 201
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_role(*MANAGERS)
def update_supplier_route(supplier_id: int):
    try:
        supplier = catalog_service.update_supplier(supplier_id, request.get_json() or {})
        return jsonify({"supplier": supplier.to_dict()}), 200
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_role(*MANAGERS)
def delete_supplier_route(supplier_id: int):
    try:
        catalog_service.delete_supplier(supplier_id)
        return jsonify({"message": "Supplier deleted"}), 200
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete supplier")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# Medicines
# =============================================================================

@medicines_bp.get("")
@require_auth
def list_medicines_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    category_id = request.args.get("category_id", type=int)
    medicines = catalog_service.list_medicines(include_inactive=include_inactive, category_id=category_id)
    return jsonify({"medicines": [m.to_dict() for m in medicines]}), 200


@medicines_bp.get("/search")
@require_auth
def search_medicines_route():
    medicines = catalog_service.search_medicines(request.args.get("q", ""))
    return jsonify({"medicines": [m.to_dict() for m in medicines]}), 200


@medicines_bp.get("/barcode/<barcode>")
@require_auth
def medicine_by_barcode_route(barcode: str):
    try:
        medicine = catalog_service.get_medicine_by_barcode(barcode)
        return jsonify({"medicine": medicine.to_dict()}), 200
    except PharmacyError as e:
        return error_response(e)


@medicines_bp.get("/<int:medicine_id>")
@require_auth
def get_medicine_route(medicine_id: int):
    try:
        medicine = catalog_service.get_medicine(medicine_id)
        return jsonify({
            "medicine": medicine.to_dict(),
            "available_quantity": batch_service.get_available_quantity(medicine_id),
        }), 200
    except PharmacyError as e:
        return error_response(e)


@medicines_bp.get("/<int:medicine_id>/batches")
@require_auth
def list_medicine_batches_route(medicine_id: int):
    """All batches, or only sellable ones (?available=true), soonest expiry first."""
    try:
        catalog_service.get_medicine(medicine_id)
        if request.args.get("available", "false").lower() == "true":
            batches = batch_service.list_available_batches(medicine_id)
        else:
            batches = batch_service.list_batches_for_medicine(medicine_id)
        return jsonify({"batches": [b.to_dict() for b in batches]}), 200
    except PharmacyError as e:
        return error_response(e)


@medicines_bp.post("")
@require_auth
@require_role(*MANAGERS)
def create_medicine_route():
    try:
        medicine = catalog_service.create_medicine(request.get_json() or {})
        return jsonify({"medicine": medicine.to_dict()}), 201
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create medicine")
        return jsonify({"error": "Internal server error"}), 500


@medicines_bp.put("/<int:medicine_id>")
@require_auth
@require_role(*MANAGERS)
def update_medicine_route(medicine_id: int):
    try:
        medicine = catalog_service.update_medicine(medicine_id, request.get_json() or {})
        return jsonify({"medicine": medicine.to_dict()}), 200
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update medicine")
        return jsonify({"error": "Internal server error"}), 500


@medicines_bp.delete("/<int:medicine_id>")
@require_auth
@require_role(*MANAGERS)
def deactivate_medicine_route(medicine_id: int):
    """Soft delete: the medicine disappears from listings, history stays."""
    try:
        medicine = catalog_service.deactivate_medicine(medicine_id)
        return jsonify({"medicine": medicine.to_dict()}), 200
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate medicine")
        return jsonify({"error": "Internal server error"}), 500
