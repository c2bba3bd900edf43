# Overview: Flask API routes for seller reports, customer statements and invoice PDFs.

"""
Report Routes

SECURITY: All routes require authentication.
- Seller reports: the seller themselves or an admin (seller_id required).
- Customer statements: the owning seller, an admin, or the customer.
- Invoices / delivery notes: anyone who may view the order.

PDF responses are served inline as application/pdf.
"""

from flask import Blueprint, Response, current_app, g, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_SELLER
from ..responses import SERVICE_ERRORS, error_response, fail, ok
from ..services import report_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api")


def _pdf_response(pdf: bytes, filename: str) -> Response:
    return Response(
        pdf,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@reports_bp.post("/generate-report")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def generate_report_route():
    """
    Request body:
    {"period": "daily|weekly|monthly|annually|custom", "date": "2026-03-04",
     "start_date": "...", "end_date": "...", "seller_id": 2}
    """
    try:
        pdf, filename = report_service.seller_report_pdf(g.principal, request.get_json(silent=True) or {})
        return _pdf_response(pdf, filename)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to generate report PDF")
        return fail("Failed to generate PDF report", 500)


@reports_bp.post("/generate-customer-report")
@require_auth
def generate_customer_report_route():
    """
    Request body:
    {"customer_id": "...", "period": "monthly", "date": "...",
     "start_date": "...", "end_date": "..."}

    Without a period the statement covers all activity.
    """
    try:
        pdf, filename = report_service.customer_report_pdf(g.principal, request.get_json(silent=True) or {})
        return _pdf_response(pdf, filename)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to generate customer report PDF")
        return fail("Failed to generate PDF report", 500)


@reports_bp.post("/generate-invoice")
@require_auth
def generate_invoice_route():
    """
    Request body:
    {"order_id": "..."}

    One PDF carrying both the invoice and delivery note numbers.
    """
    try:
        pdf, filename = report_service.invoice_pdf(g.principal, request.get_json(silent=True) or {})
        return _pdf_response(pdf, filename)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to generate invoice PDF")
        return fail("Failed to generate PDF report", 500)


@reports_bp.get("/reports/summary")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def report_summary_route():
    """Same data as the seller report PDF, as JSON. Query parameters mirror the PDF body."""
    try:
        params = {
            key: request.args.get(key)
            for key in ("period", "date", "start_date", "end_date", "seller_id")
        }
        return ok(report_service.seller_report(g.principal, params))
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build report summary")
        return fail("Internal server error", 500)
