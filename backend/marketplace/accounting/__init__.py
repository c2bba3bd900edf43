"""
Customer ledger reconciliation: order ledger, payment allocation, credit
notes and statements. Pure Python; no Flask or database imports.
"""

from .ledger import (
    LedgerError,
    LedgerOrder,
    OrderLedger,
    derive_payment_status,
)
from .allocation import Allocation, AllocationError, AllocationResult, PaymentAllocator
from .credit_notes import (
    CreditNoteDraft,
    CreditNoteError,
    CreditNoteProcessor,
    CreditNoteReason,
    reason_label,
)
from .statement import (
    CreditNoteEntry,
    InvoiceEntry,
    PaymentEntry,
    Statement,
    StatementBuilder,
    StatementLine,
    credit_note_number,
    delivery_note_number,
    invoice_number,
)
from .csv_export import parse_statement_csv, statement_to_csv

__all__ = [
    'LedgerError', 'LedgerOrder', 'OrderLedger', 'derive_payment_status',
    'Allocation', 'AllocationError', 'AllocationResult', 'PaymentAllocator',
    'CreditNoteDraft', 'CreditNoteError', 'CreditNoteProcessor', 'CreditNoteReason', 'reason_label',
    'CreditNoteEntry', 'InvoiceEntry', 'PaymentEntry', 'Statement', 'StatementBuilder', 'StatementLine',
    'credit_note_number', 'delivery_note_number', 'invoice_number',
    'parse_statement_csv', 'statement_to_csv',
]
