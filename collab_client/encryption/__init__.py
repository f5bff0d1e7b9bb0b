"""Encryption collaborators."""

from .kms import LocalKms, derive_key, generate_master_key
from .service import EncryptionService, KmsClient, LocalEncryptionService

__all__ = [
    "EncryptionService",
    "KmsClient",
    "LocalEncryptionService",
    "LocalKms",
    "derive_key",
    "generate_master_key",
]
