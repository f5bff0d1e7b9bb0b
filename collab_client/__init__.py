"""Asyncio client for a collaboration platform: batched avatar lookups,
conversation decryption and thin service wrappers."""

from .client import CollabClient
from .config import Config, load_config
from .conversation import DecryptionResult, Decryptor, FieldOutcome, ObjectType, OutcomeStatus
from .utils import (
    AvatarError,
    BatchError,
    CollabClientError,
    ConfigError,
    EncryptionError,
    RequestError,
    ServiceError,
    setup_logging,
)

__all__ = [
    "AvatarError",
    "BatchError",
    "CollabClient",
    "CollabClientError",
    "Config",
    "ConfigError",
    "DecryptionResult",
    "Decryptor",
    "EncryptionError",
    "FieldOutcome",
    "ObjectType",
    "OutcomeStatus",
    "RequestError",
    "ServiceError",
    "load_config",
    "setup_logging",
]

__version__ = "0.1.0"
