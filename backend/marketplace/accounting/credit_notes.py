# Overview: Credit note reasons, labels and the order-side credit note operation.

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from marketplace.validation import ValidationError
from .ledger import LedgerOrder, apply_credit


class CreditNoteError(ValidationError):
    """Raised when a credit note is rejected. The order is left untouched."""


class CreditNoteReason(str, Enum):
    RETURNED_GOODS = "returned_goods"
    QUALITY_ISSUE = "quality_issue"
    WRONG_ITEMS = "wrong_items"
    DAMAGED_GOODS = "damaged_goods"
    PRICING_ERROR = "pricing_error"
    CUSTOMER_COMPLAINT = "customer_complaint"
    OTHER = "other"


REASON_LABELS = {
    CreditNoteReason.RETURNED_GOODS: "Returned Goods",
    CreditNoteReason.QUALITY_ISSUE: "Quality Issue",
    CreditNoteReason.WRONG_ITEMS: "Wrong Items",
    CreditNoteReason.DAMAGED_GOODS: "Damaged Goods",
    CreditNoteReason.PRICING_ERROR: "Pricing Error",
    CreditNoteReason.CUSTOMER_COMPLAINT: "Customer Complaint",
    CreditNoteReason.OTHER: "Other",
}

DEFAULT_CREDIT_NOTE_LABEL = "Credit Note"

# Only used for rows created before the reason was stored
_REASON_KEYWORDS = (
    (CreditNoteReason.RETURNED_GOODS, ("return", "returned", "send back", "sent back")),
    (CreditNoteReason.QUALITY_ISSUE, ("quality", "spoiled", "off smell", "not fresh")),
    (CreditNoteReason.WRONG_ITEMS, ("wrong item", "wrong product", "incorrect item", "mix-up")),
    (CreditNoteReason.DAMAGED_GOODS, ("damage", "damaged", "broken", "leaking", "crushed")),
    (CreditNoteReason.PRICING_ERROR, ("price", "pricing", "overcharge", "overcharged")),
    (CreditNoteReason.CUSTOMER_COMPLAINT, ("complaint", "complained", "unhappy")),
)


def parse_reason(value) -> CreditNoteReason:
    if isinstance(value, CreditNoteReason):
        return value
    try:
        return CreditNoteReason((value or "").strip().lower())
    except ValueError:
        valid = ", ".join(r.value for r in CreditNoteReason)
        raise CreditNoteError(f"reason must be one of: {valid}")


def reason_label(reason: str | CreditNoteReason | None, notes: str | None = None) -> str:
    """
    Human label for a credit note.

    A stored reason always wins; untagged rows fall back to keyword
    classification of the notes.
    """
    if reason:
        try:
            return REASON_LABELS[CreditNoteReason(reason)]
        except ValueError:
            pass
    return classify_notes(notes)


def classify_notes(notes: str | None) -> str:
    """
    Best-effort label from free text. Exactly one category must match;
    no match or matches from several categories give the default label.
    """
    text = (notes or "").lower()
    matched = []
    for reason, keywords in _REASON_KEYWORDS:
        if any(re.search(rf"\b{re.escape(k)}", text) for k in keywords):
            matched.append(reason)
    if len(matched) == 1:
        return REASON_LABELS[matched[0]]
    return DEFAULT_CREDIT_NOTE_LABEL


@dataclass(frozen=True)
class CreditNoteDraft:
    order_id: str
    amount_cents: int
    reason: CreditNoteReason
    notes: str

    @property
    def label(self) -> str:
        return REASON_LABELS[self.reason]

    @property
    def transaction_amount_cents(self) -> int:
        """Signed amount of the mirrored transaction."""
        return -self.amount_cents


class CreditNoteProcessor:

    def validate(self, order: LedgerOrder, amount_cents: int, reason, notes: str | None) -> CreditNoteDraft:
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
            raise CreditNoteError("Credit note amount must be an integer amount of cents")
        if amount_cents <= 0:
            raise CreditNoteError("Credit note amount must be greater than 0")
        if amount_cents > order.total_cents:
            raise CreditNoteError(
                f"Credit note amount ({amount_cents}) cannot exceed the order total ({order.total_cents})"
            )
        clean_notes = (notes or "").strip()
        if not clean_notes:
            raise CreditNoteError("Notes are required for a credit note")
        return CreditNoteDraft(
            order_id=order.order_id,
            amount_cents=amount_cents,
            reason=parse_reason(reason),
            notes=clean_notes,
        )

    def apply(self, order: LedgerOrder, amount_cents: int, reason, notes: str | None) -> CreditNoteDraft:
        """Validate fully, then reduce the order total."""
        draft = self.validate(order, amount_cents, reason, notes)
        apply_credit(order, draft.amount_cents)
        return draft
