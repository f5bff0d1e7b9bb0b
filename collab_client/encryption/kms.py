"""Local key management backend.

Keys are never stored: each key uri is turned into a Fernet key by PBKDF2
over a master key, with the uri as salt. The backend also keeps the
authorization bookkeeping that the board service relies on.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..utils import EncryptionError


logger = logging.getLogger(__name__)

KEY_URI_PREFIX = "kms://local/keys/"
RESOURCE_URI_PREFIX = "kms://local/resources/"


def generate_master_key() -> str:
    """
    Generate a new master key.

    Returns:
        Base64-encoded key string.
    """
    return Fernet.generate_key().decode("utf-8")


def derive_key(master_key: str, key_uri: str, iterations: int = 200_000) -> str:
    """
    Derive the Fernet key for a key uri using PBKDF2.

    Args:
        master_key: Base64 master key.
        key_uri: Key uri, used as salt.
        iterations: PBKDF2 iteration count.

    Returns:
        Derived Fernet key string.
    """
    try:
        master_bytes = base64.urlsafe_b64decode(master_key)
    except Exception as exc:
        raise EncryptionError("Invalid master key format.") from exc

    salt = hashlib.sha256(key_uri.encode("utf-8")).digest()[:16]
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    derived = kdf.derive(master_bytes)
    return base64.urlsafe_b64encode(derived).decode("utf-8")


class LocalKms:
    """In-process key management with PBKDF2 derived keys."""

    def __init__(self, master_key: Optional[str] = None, iterations: int = 200_000) -> None:
        self.master_key = master_key or generate_master_key()
        self.iterations = iterations
        self._keys: Dict[str, str] = {}
        self._authorizations: Dict[str, List[Dict[str, str]]] = {}

    def fetch_key(self, key_uri: Optional[str]) -> str:
        """
        Return the Fernet key for a key uri.

        Args:
            key_uri: Key uri.

        Returns:
            Fernet key.
        """
        if not key_uri:
            raise EncryptionError("No encryption key url supplied.")
        if not key_uri.startswith(KEY_URI_PREFIX):
            raise EncryptionError(f"Unknown key url: {key_uri}")
        if key_uri not in self._keys:
            self._keys[key_uri] = derive_key(self.master_key, key_uri, self.iterations)
        return self._keys[key_uri]

    async def create_unbound_keys(self, count: int = 1) -> List[Dict[str, Any]]:
        if count <= 0:
            raise ValueError("count must be greater than 0.")
        keys = []
        for _ in range(count):
            key_uri = f"{KEY_URI_PREFIX}{uuid.uuid4()}"
            keys.append({"uri": key_uri, "bound": False})
        return keys

    async def create_resource(self, key_uris: List[str], user_ids: List[str]) -> Dict[str, Any]:
        resource_uri = f"{RESOURCE_URI_PREFIX}{uuid.uuid4()}"
        self._authorizations[resource_uri] = [
            {"authId": user_id, "resourceUri": resource_uri} for user_id in user_ids
        ]
        return {"uri": resource_uri, "keyUris": list(key_uris)}

    async def add_authorization(self, kro_uri: str, auth_id: str) -> Dict[str, str]:
        authorization = {"authId": auth_id, "resourceUri": kro_uri}
        self._authorizations.setdefault(kro_uri, []).append(authorization)
        return authorization

    async def list_authorizations(self, kro_uri: str) -> List[Dict[str, str]]:
        return list(self._authorizations.get(kro_uri, []))

    async def remove_authorization(self, kro_uri: str, auth_id: str) -> None:
        authorizations = self._authorizations.get(kro_uri, [])
        remaining = [item for item in authorizations if item["authId"] != auth_id]
        if len(remaining) == len(authorizations):
            raise EncryptionError(f"{auth_id} is not authorized on {kro_uri}")
        self._authorizations[kro_uri] = remaining

    async def prepare_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Wrap a KMS request; the local backend uses plain JSON."""
        return {"wrapped": json.dumps(payload), "body": payload}

    async def decrypt_kms_message(self, message: Any) -> Any:
        if isinstance(message, (dict, list)) or message is None:
            return message
        try:
            return json.loads(message)
        except (TypeError, ValueError) as exc:
            raise EncryptionError("Invalid KMS message.") from exc
