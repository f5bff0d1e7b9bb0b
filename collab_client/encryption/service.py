"""Encryption collaborator interface and a local Fernet backend."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional, Protocol, Tuple

from cryptography.fernet import Fernet, InvalidToken

from ..utils import EncryptionError
from .kms import LocalKms


class KmsClient(Protocol):
    async def create_unbound_keys(self, count: int = 1) -> List[Dict[str, Any]]:
        ...

    async def prepare_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def decrypt_kms_message(self, message: Any) -> Any:
        ...

    async def list_authorizations(self, kro_uri: str) -> List[Dict[str, str]]:
        ...

    async def remove_authorization(self, kro_uri: str, auth_id: str) -> None:
        ...


class EncryptionService(Protocol):
    """What the client needs from an encryption/KMS implementation."""

    kms: KmsClient

    async def decrypt_text(self, key_url: Optional[str], ciphertext: str) -> str:
        ...

    async def encrypt_text(self, key_url: Optional[str], plaintext: str) -> str:
        ...

    async def decrypt_scr(self, key_url: Optional[str], encrypted_scr: str) -> Dict[str, Any]:
        ...

    async def encrypt_scr(self, key_url: Optional[str], scr: Dict[str, Any]) -> str:
        ...

    async def encrypt_binary(self, data: bytes) -> Tuple[Dict[str, Any], bytes]:
        ...


class LocalEncryptionService:
    """
    Fernet encryption keyed by KMS key urls.

    Encryption is CPU-bound, so each call is pushed to a worker thread.
    """

    def __init__(self, kms: Optional[LocalKms] = None) -> None:
        self.kms = kms or LocalKms()

    def _fernet(self, key_url: Optional[str]) -> Fernet:
        return Fernet(self.kms.fetch_key(key_url))

    async def encrypt_text(self, key_url: Optional[str], plaintext: str) -> str:
        fernet = self._fernet(key_url)
        try:
            token = await asyncio.to_thread(fernet.encrypt, plaintext.encode("utf-8"))
        except Exception as exc:
            raise EncryptionError("Failed to encrypt text.") from exc
        return token.decode("utf-8")

    async def decrypt_text(self, key_url: Optional[str], ciphertext: str) -> str:
        fernet = self._fernet(key_url)
        try:
            plaintext = await asyncio.to_thread(fernet.decrypt, ciphertext)
        except InvalidToken as exc:
            raise EncryptionError("Ciphertext integrity check failed.") from exc
        except Exception as exc:
            raise EncryptionError("Failed to decrypt text.") from exc
        return plaintext.decode("utf-8")

    async def encrypt_scr(self, key_url: Optional[str], scr: Dict[str, Any]) -> str:
        return await self.encrypt_text(key_url, json.dumps(scr, sort_keys=True))

    async def decrypt_scr(self, key_url: Optional[str], encrypted_scr: str) -> Dict[str, Any]:
        if not encrypted_scr:
            raise EncryptionError("No secure content reference supplied.")
        plaintext = await self.decrypt_text(key_url, encrypted_scr)
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError("Secure content reference is not valid JSON.") from exc

    async def encrypt_binary(self, data: bytes) -> Tuple[Dict[str, Any], bytes]:
        """
        Encrypt bytes under a fresh one-off key.

        Args:
            data: Plaintext bytes.

        Returns:
            Tuple of (scr describing the key, ciphertext).
        """
        key = Fernet.generate_key()
        try:
            cdata = await asyncio.to_thread(Fernet(key).encrypt, data)
        except Exception as exc:
            raise EncryptionError("Failed to encrypt binary.") from exc
        scr = {"enc": "fernet", "key": key.decode("utf-8"), "size": len(data)}
        return scr, cdata

    async def decrypt_binary(self, scr: Dict[str, Any], cdata: bytes) -> bytes:
        try:
            return await asyncio.to_thread(Fernet(scr["key"].encode("utf-8")).decrypt, cdata)
        except InvalidToken as exc:
            raise EncryptionError("Binary integrity check failed.") from exc
        except (KeyError, AttributeError) as exc:
            raise EncryptionError("Secure content reference has no key.") from exc
