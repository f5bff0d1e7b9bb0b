"""Recursive decryption of conversation activity trees."""

from .decryptor import DecryptionResult, Decryptor
from .handlers import DEFAULT_HANDLERS, decrypt_object, dispatch
from .transforms import (
    DecryptionContext,
    FieldOutcome,
    ObjectType,
    OutcomeStatus,
    decrypt_card_item,
    decrypt_scr_prop,
    decrypt_text_prop,
)

__all__ = [
    "DEFAULT_HANDLERS",
    "DecryptionContext",
    "DecryptionResult",
    "Decryptor",
    "FieldOutcome",
    "ObjectType",
    "OutcomeStatus",
    "decrypt_card_item",
    "decrypt_object",
    "decrypt_scr_prop",
    "decrypt_text_prop",
    "dispatch",
]
