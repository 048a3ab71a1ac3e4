from flask import Blueprint, request

from ..decorators import require_actor, require_role, ROLE_CASHIER, ROLE_WAREHOUSE
from ..errors import DepotError
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/dashboard")
@require_actor
def dashboard():
    return reporting_service.dashboard_summary(), 200


@reports_bp.get("/reports/sales")
@require_actor
@require_role(ROLE_CASHIER, ROLE_WAREHOUSE)
def sales_report():
    try:
        report = reporting_service.sales_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return report, 200
    except DepotError as e:
        return e.to_dict(), e.status_code
