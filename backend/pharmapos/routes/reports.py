from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PharmacyError, error_response
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import audit_service, reporting_service
from ..validation import parse_date_param


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")
audit_bp = Blueprint("audit_logs", __name__, url_prefix="/api/audit-logs")
search_bp = Blueprint("search", __name__, url_prefix="/api/search")
notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@reports_bp.get("/sales")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def sales_report():
    try:
        start = parse_date_param(request.args.get("start"), "start")
        end = parse_date_param(request.args.get("end"), "end")
        if not start or not end:
            return jsonify({"error": "start and end are required"}), 400
        return jsonify(reporting_service.get_sales_report(start, end)), 200
    except PharmacyError as exc:
        return error_response(exc)


@reports_bp.get("/daily")
@require_auth
def daily_sales_report():
    try:
        day = parse_date_param(request.args.get("date"), "date")
        return jsonify(reporting_service.get_daily_sales(day)), 200
    except PharmacyError as exc:
        return error_response(exc)


@reports_bp.get("/low-stock")
@require_auth
def low_stock_report():
    items = reporting_service.get_low_stock_medicines()
    return jsonify({"medicines": items, "count": len(items)}), 200


@reports_bp.get("/expiring")
@require_auth
def expiring_report():
    try:
        items = reporting_service.get_expiring_batches(request.args.get("days", type=int))
        return jsonify({"batches": items, "count": len(items)}), 200
    except PharmacyError as exc:
        return error_response(exc)


@reports_bp.get("/dashboard")
@require_auth
def dashboard_report():
    return jsonify(reporting_service.get_dashboard_stats()), 200


@reports_bp.get("/customers")
@require_auth
def customers_report():
    customers = reporting_service.list_customers()
    return jsonify({"customers": customers}), 200


@audit_bp.get("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def list_audit_logs():
    entries = audit_service.list_audit_logs(
        limit=min(request.args.get("limit", 100, type=int), 1000),
        action=request.args.get("action"),
        entity_type=request.args.get("entity_type"),
    )
    return jsonify({"audit_logs": [e.to_dict() for e in entries]}), 200


@search_bp.get("")
@require_auth
def global_search():
    """GET /api/search?q=...&type=all|medicine|invoice|supplier"""
    try:
        results = reporting_service.global_search(
            request.args.get("q", ""),
            request.args.get("type", "all"),
        )
        return jsonify({"results": results, "count": len(results)}), 200
    except PharmacyError as exc:
        return error_response(exc)


@notifications_bp.get("")
@require_auth
def list_notifications():
    items = reporting_service.get_notifications()
    return jsonify({"notifications": items, "count": len(items)}), 200
