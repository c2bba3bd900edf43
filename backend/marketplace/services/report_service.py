# Overview: Service-layer operations for seller reports, customer statements and invoice PDFs.

"""
Report Service

Report data is read first and rendered second: the seller report, the
customer statement and the order invoice are plain dicts handed to Jinja
templates, and the resulting HTML is printed to PDF by headless Chromium.
A renderer failure surfaces as an ordinary exception (500); it never
leaves partial state.

All money values in the report data are integer cents. Templates format
them with the `money` filter.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta

from flask import render_template
from playwright.sync_api import sync_playwright

from ..accounting.ledger import (
    ORDER_STATUS_CANCELLED,
    PAYMENT_STATUS_OVERDUE,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
)
from ..accounting.statement import PAYMENT_METHOD_LABELS, delivery_note_number, invoice_number
from ..extensions import db
from ..models import Customer, Order, User, ROLE_SELLER
from marketplace.time_utils import (
    PERIOD_CUSTOM,
    PERIOD_WEEKLY,
    VALID_PERIODS,
    parse_iso_datetime,
    period_range,
    to_utc_z,
    utcnow,
)
from ..validation import ValidationError
from . import order_service, statement_service
from .access_policy import ACTION_VIEW, KIND_REPORT, Principal, Resource, require_access

logger = logging.getLogger(__name__)


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""


STANDING_GOOD = "Good Standing"
STANDING_PARTIAL = "Partial Payments"
STANDING_OUTSTANDING = "Has Outstanding"

TOP_LIMIT = 10

PDF_MARGIN = {"top": "15mm", "right": "15mm", "bottom": "15mm", "left": "15mm"}


# =============================================================================
# PERIODS
# =============================================================================

def resolve_period(data: dict, *, default: str | None = PERIOD_WEEKLY) -> tuple[str | None, datetime | None, datetime | None]:
    """
    Returns (period, start, end). With default=None and no period given,
    the window is unbounded (all time).
    """
    period = (data.get("period") or default or "").strip().lower() or None
    if period is None:
        return None, None, None
    if period not in VALID_PERIODS:
        raise ReportError(f"period must be one of: {', '.join(VALID_PERIODS)}")
    try:
        anchor = parse_iso_datetime(data.get("date")) or utcnow()
        start, end = period_range(period, start=data.get("start_date"), end=data.get("end_date"), now=anchor)
    except ValueError as exc:
        raise ReportError(str(exc))
    return period, start, end


def _period_text(period: str | None, start: datetime | None, end: datetime | None) -> str:
    if period is None or start is None or end is None:
        return "All Time"
    if period == "daily":
        return start.strftime("%B %d, %Y")
    if period == "monthly":
        return start.strftime("%B %Y")
    if period == "annually":
        return start.strftime("%Y")
    if period == PERIOD_CUSTOM:
        return f"{start.strftime('%b %d, %Y')} - {end.strftime('%b %d, %Y')}"
    return f"{start.strftime('%b %d')} - {end.strftime('%b %d, %Y')}"


# =============================================================================
# SELLER REPORT
# =============================================================================

def _resolve_seller(principal: Principal, seller_id) -> User:
    if principal.is_seller:
        seller_id = principal.user_id
    elif not seller_id:
        raise ReportError("seller_id is required")
    try:
        seller = db.session.get(User, int(seller_id))
    except (TypeError, ValueError):
        raise ReportError("seller_id must be a user id")
    if not seller or seller.role != ROLE_SELLER:
        raise ReportError("seller_id must reference a seller")
    require_access(principal, Resource(kind=KIND_REPORT, seller_id=seller.id), ACTION_VIEW)
    return seller


def customer_standing(outstanding_cents: int, unpaid_orders: int, partial_orders: int) -> str:
    if outstanding_cents <= 0:
        return STANDING_GOOD
    if unpaid_orders > 0 or partial_orders > 2:
        return STANDING_OUTSTANDING
    if partial_orders > 0:
        return STANDING_PARTIAL
    return STANDING_GOOD


def _summary(orders: list[Order], customers: list[Customer]) -> dict:
    revenue = sum(o.total_cents for o in orders)
    paid = sum(o.total_paid_cents for o in orders)
    delivery = sum(o.delivery_fee_cents for o in orders)
    count = len(orders)
    ordering = {o.customer_id for o in orders}
    return {
        "total_revenue_cents": revenue,
        "total_paid_cents": paid,
        "total_outstanding_cents": revenue - paid,
        "total_orders": count,
        "paid_orders": sum(1 for o in orders if o.payment_status == PAYMENT_STATUS_PAID),
        "partial_orders": sum(1 for o in orders if o.payment_status == PAYMENT_STATUS_PARTIAL),
        "unpaid_orders": sum(
            1 for o in orders if o.payment_status in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_OVERDUE)
        ),
        "average_order_value_cents": revenue // count if count else 0,
        "delivery_revenue_cents": delivery,
        "product_revenue_cents": revenue - delivery,
        "total_customers": len(customers),
        "active_customers": sum(1 for c in customers if c.id in ordering),
    }


def _trends(orders: list[Order], start: datetime, end: datetime) -> list[dict]:
    by_day: dict[str, list[Order]] = defaultdict(list)
    for order in orders:
        by_day[order.created_at.strftime("%Y-%m-%d")].append(order)

    trends = []
    day = start
    while day <= end:
        key = day.strftime("%Y-%m-%d")
        day_orders = by_day.get(key, [])
        trends.append({
            "date": key,
            "label": day.strftime("%b %d"),
            "revenue_cents": sum(o.total_cents for o in day_orders),
            "orders": len(day_orders),
        })
        day += timedelta(days=1)
    return trends


def _top_products(orders: list[Order]) -> list[dict]:
    stats: dict[str, dict] = {}
    for order in orders:
        for item in order.items:
            key = item.product_id or item.name
            entry = stats.setdefault(key, {"product_id": item.product_id, "name": item.name, "quantity": 0, "revenue_cents": 0})
            entry["quantity"] += item.quantity
            entry["revenue_cents"] += item.line_total_cents
    return sorted(stats.values(), key=lambda s: s["revenue_cents"], reverse=True)[:TOP_LIMIT]


def _top_customers(orders: list[Order], customers: list[Customer]) -> list[dict]:
    by_customer: dict[str, list[Order]] = defaultdict(list)
    for order in orders:
        by_customer[order.customer_id].append(order)

    rows = []
    for customer in customers:
        mine = by_customer.get(customer.id, [])
        spent = sum(o.total_cents for o in mine)
        paid = sum(o.total_paid_cents for o in mine)
        partial = sum(1 for o in mine if o.payment_status == PAYMENT_STATUS_PARTIAL)
        unpaid = sum(1 for o in mine if o.payment_status in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_OVERDUE))
        rows.append({
            "customer_id": customer.id,
            "name": customer.display_name,
            "email": customer.email,
            "order_count": len(mine),
            "total_spent_cents": spent,
            "total_paid_cents": paid,
            "total_outstanding_cents": spent - paid,
            "status": customer_standing(spent - paid, unpaid, partial),
        })
    rows.sort(key=lambda r: r["total_spent_cents"], reverse=True)
    return rows[:TOP_LIMIT]


def _payment_analysis(summary: dict, orders: list[Order]) -> list[dict]:
    revenue = summary["total_revenue_cents"]

    def pct(value: int) -> float:
        return round(value * 100 / revenue, 1) if revenue else 0.0

    analysis = [
        {"name": "Paid", "value_cents": summary["total_paid_cents"], "percentage": pct(summary["total_paid_cents"])},
        {
            "name": "Outstanding",
            "value_cents": summary["total_outstanding_cents"],
            "percentage": pct(summary["total_outstanding_cents"]),
        },
    ]
    partial_paid = sum(o.total_paid_cents for o in orders if o.payment_status == PAYMENT_STATUS_PARTIAL)
    if partial_paid > 0:
        analysis.append({"name": "Partial", "value_cents": partial_paid, "percentage": pct(partial_paid)})
    return analysis


def seller_report(principal: Principal, data: dict | None = None) -> dict:
    """Report data for one seller and period; cancelled orders are left out."""
    data = data or {}
    seller = _resolve_seller(principal, data.get("seller_id"))
    period, start, end = resolve_period(data)

    orders = db.session.query(Order).filter(
        Order.seller_id == seller.id,
        Order.status != ORDER_STATUS_CANCELLED,
        Order.created_at >= start,
        Order.created_at <= end,
    ).order_by(Order.created_at.desc()).all()
    customers = db.session.query(Customer).filter(Customer.seller_id == seller.id).all()
    names = {c.id: c.display_name for c in customers}

    summary = _summary(orders, customers)
    return {
        "seller_id": seller.id,
        "seller_name": seller.business_name or seller.display_name or seller.email,
        "period": period,
        "period_text": _period_text(period, start, end),
        "start_date": to_utc_z(start),
        "end_date": to_utc_z(end),
        "generated_at": to_utc_z(utcnow()),
        "summary": summary,
        "trends": _trends(orders, start, end),
        "top_products": _top_products(orders),
        "top_customers": _top_customers(orders, customers),
        "payment_analysis": _payment_analysis(summary, orders),
        "orders": [
            dict(
                o.to_dict(include_children=False),
                invoice_number=invoice_number(o.id, o.created_at),
                customer_name=names.get(o.customer_id, ""),
            )
            for o in orders
        ],
    }


# =============================================================================
# CUSTOMER STATEMENT REPORT
# =============================================================================

def customer_report(principal: Principal, data: dict | None = None) -> dict:
    data = data or {}
    customer_id = data.get("customer_id") or principal.customer_id
    if not customer_id:
        raise ReportError("customer_id is required")
    period, start, end = resolve_period(data, default=None)
    customer, statement = statement_service.build_customer_statement(
        principal, customer_id, start=start, end=end
    )

    outstanding = sum(
        o.remaining_amount_cents
        for o in customer.orders
        if o.status != ORDER_STATUS_CANCELLED and o.remaining_amount_cents > 0
    )
    return {
        "customer": customer.to_dict(include_prices=False),
        "seller_name": (customer.seller.business_name or customer.seller.display_name) if customer.seller else "",
        "period": period,
        "period_text": _period_text(period, start, end),
        "generated_at": to_utc_z(utcnow()),
        "statement": statement,
        "rows": statement.rows(),
        "outstanding_cents": outstanding,
    }


# =============================================================================
# INVOICE / DELIVERY NOTE
# =============================================================================

def invoice_report(principal: Principal, data: dict | None = None) -> dict:
    """
    Invoice and delivery note for one order.

    SECURITY: Same visibility as the order itself (owning seller, admin,
    or the ordering customer).
    """
    data = data or {}
    order_id = data.get("order_id")
    if not order_id:
        raise ReportError("order_id is required")
    order = order_service.get_order(principal, str(order_id))
    customer = order.customer
    seller = customer.seller if customer else None

    payments = sorted(order.payments, key=lambda p: (p.paid_at, p.created_at))
    credit_notes = sorted(order.credit_notes, key=lambda c: c.created_at)
    return {
        "order": order.to_dict(include_children=False),
        "invoice_number": invoice_number(order.id, order.created_at),
        "delivery_note_number": delivery_note_number(order.id, order.created_at),
        "customer": customer.to_dict(include_prices=False) if customer else {},
        "seller_name": (seller.business_name or seller.display_name or seller.email) if seller else "",
        "seller_email": seller.email if seller else "",
        "items": [i.to_dict() for i in order.items],
        "payments": [
            dict(p.to_dict(), method_label=PAYMENT_METHOD_LABELS.get(p.method, p.method.replace("_", " ").title()))
            for p in payments
        ],
        "credit_notes": [c.to_dict() for c in credit_notes],
        "generated_at": to_utc_z(utcnow()),
    }


# =============================================================================
# RENDERING
# =============================================================================

def render_pdf(html: str) -> bytes:
    """Print HTML to an A4 PDF with headless Chromium."""
    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(headless=True, args=["--no-sandbox"])
        try:
            page = browser.new_page()
            page.set_content(html, wait_until="networkidle")
            return page.pdf(format="A4", print_background=True, margin=PDF_MARGIN)
        finally:
            browser.close()


def seller_report_pdf(principal: Principal, data: dict | None = None) -> tuple[bytes, str]:
    report = seller_report(principal, data)
    html = render_template("reports/seller_report.html", report=report)
    pdf = render_pdf(html)
    filename = f"report-{report['period']}-{utcnow().strftime('%Y-%m-%d')}.pdf"
    logger.info("Seller report generated for seller %s (%s)", report["seller_id"], report["period"])
    return pdf, filename


def customer_report_pdf(principal: Principal, data: dict | None = None) -> tuple[bytes, str]:
    report = customer_report(principal, data)
    html = render_template("reports/customer_statement.html", report=report)
    pdf = render_pdf(html)
    filename = f"statement-{report['customer']['id']}-{utcnow().strftime('%Y-%m-%d')}.pdf"
    logger.info("Customer statement generated for customer %s", report["customer"]["id"])
    return pdf, filename


def invoice_pdf(principal: Principal, data: dict | None = None) -> tuple[bytes, str]:
    report = invoice_report(principal, data)
    html = render_template("reports/invoice.html", report=report)
    pdf = render_pdf(html)
    filename = f"invoice-{report['invoice_number']}.pdf"
    logger.info("Invoice %s generated for order %s", report["invoice_number"], report["order"]["id"])
    return pdf, filename
