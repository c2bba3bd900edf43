# Overview: CSV rendering and parsing of customer statements.

from __future__ import annotations

import csv
import io

from .statement import Statement

UTF8_BOM = "\ufeff"

STATEMENT_CSV_HEADER = ["Date", "Type", "Reference", "Description", "Amount", "Payment", "Balance"]


def statement_to_csv(statement: Statement) -> str:
    """
    UTF-8 with BOM, comma-delimited, CRLF line endings. Fields containing a
    comma, quote or newline are quoted with internal quotes doubled.
    Amounts are 2-decimal with no currency symbol.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=",", quotechar='"', quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(STATEMENT_CSV_HEADER)
    writer.writerows(statement.rows())
    return UTF8_BOM + buf.getvalue()


def parse_statement_csv(text: str) -> list[list[str]]:
    """Read an exported statement back into display rows (header dropped)."""
    if text.startswith(UTF8_BOM):
        text = text[len(UTF8_BOM):]
    reader = csv.reader(io.StringIO(text, newline=""))
    rows = list(reader)
    if not rows:
        return []
    if rows[0] != STATEMENT_CSV_HEADER:
        raise ValueError("Not a statement export: unexpected header")
    return rows[1:]
