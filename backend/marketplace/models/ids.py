# Overview: Opaque document identifiers for marketplace records.

import secrets
import string

_ALPHABET = string.ascii_letters + string.digits

DOCUMENT_ID_LENGTH = 20


def new_document_id() -> str:
    """20-character random id; the last 6 characters feed document numbers."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(DOCUMENT_ID_LENGTH))
