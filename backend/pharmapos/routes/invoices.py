# Overview: Flask API routes for invoicing (checkout); parses input and returns JSON responses.

# backend/pharmapos/routes/invoices.py
"""Invoice API routes"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import PharmacyError, error_response
from ..services import batch_service, invoice_service
from ..validation import parse_date_param


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("")
@require_auth
def create_invoice_route():
    """
    Check out a cart.

    Body:
        items: [{"medicine_id": 1, "quantity": 2}, ...]
        customer_name, customer_phone, notes (optional)
        discount_percent or discount_amount (optional)
        payment_method: cash | card | upi
        payment_status: paid | pending | partial
        invoice_type: retail | wholesale

    409 on insufficient stock or a lost race; nothing is saved in that case.
    """
    try:
        data = request.get_json() or {}
        invoice = invoice_service.create_invoice(
            items=data.get("items"),
            user_id=g.current_user.id,
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            discount_percent=data.get("discount_percent"),
            discount_amount=data.get("discount_amount"),
            payment_method=data.get("payment_method", "cash"),
            payment_status=data.get("payment_status", "paid"),
            invoice_type=data.get("invoice_type", "retail"),
            notes=data.get("notes"),
            ip_address=request.remote_addr,
        )
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 201

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/preview")
@require_auth
def preview_invoice_route():
    """Price a cart with the FEFO plan it would get. Reserves nothing."""
    try:
        data = request.get_json() or {}
        preview = invoice_service.preview_invoice(
            data.get("items"),
            discount_percent=data.get("discount_percent"),
            discount_amount=data.get("discount_amount"),
        )
        return jsonify(preview), 200

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to preview invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    try:
        invoices = invoice_service.list_invoices(
            start=parse_date_param(request.args.get("start"), "start"),
            end=parse_date_param(request.args.get("end"), "end"),
            limit=min(request.args.get("limit", 200, type=int), 1000),
        )
        return jsonify({"invoices": [i.to_dict() for i in invoices]}), 200
    except PharmacyError as e:
        return error_response(e)


@invoices_bp.get("/next-number")
@require_auth
def next_number_route():
    return jsonify({"invoice_number": invoice_service.next_invoice_number_preview()}), 200


@invoices_bp.get("/availability/<int:medicine_id>")
@require_auth
def availability_route(medicine_id: int):
    """Sellable quantity right now; the client's max quantity for a cart line."""
    return jsonify({
        "medicine_id": medicine_id,
        "available_quantity": batch_service.get_available_quantity(medicine_id),
    }), 200


@invoices_bp.get("/number/<invoice_number>")
@require_auth
def get_invoice_by_number_route(invoice_number: str):
    try:
        invoice = invoice_service.get_invoice_by_number(invoice_number)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200
    except PharmacyError as e:
        return error_response(e)


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200
    except PharmacyError as e:
        return error_response(e)
