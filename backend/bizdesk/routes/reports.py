from flask import Blueprint, jsonify, request, g

from ..decorators import require_scope
from ..errors import BizDeskError
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _window():
    return reporting_service.ReportWindow.parse(request.args.get("start"), request.args.get("end"))


@reports_bp.get("/general")
@require_scope
def general_report():
    try:
        report = reporting_service.general_report(g.scope, _window())
        return jsonify(report.to_dict()), 200
    except BizDeskError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@reports_bp.get("/sales")
@require_scope
def detailed_sales_report():
    try:
        report = reporting_service.detailed_sales_report(g.scope, _window())
        return jsonify(report.to_dict()), 200
    except BizDeskError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@reports_bp.get("/top-selling")
@require_scope
def top_selling_report():
    try:
        report = reporting_service.top_selling_report(
            g.scope, _window(), limit=request.args.get("limit", type=int)
        )
        return jsonify(report.to_dict()), 200
    except BizDeskError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@reports_bp.get("/debtors")
@require_scope
def debtor_report():
    report = reporting_service.debtor_report(g.scope)
    return jsonify(report.to_dict()), 200


@reports_bp.get("/profit-loss")
@require_scope
def profit_loss_report():
    try:
        report = reporting_service.profit_loss_report(g.scope, _window())
        return jsonify(report.to_dict()), 200
    except BizDeskError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@reports_bp.get("/inventory")
@require_scope
def inventory_snapshot():
    report = reporting_service.inventory_snapshot(g.scope)
    return jsonify(report.to_dict()), 200
