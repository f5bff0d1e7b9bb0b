"""Tests for the local encryption backend."""

from __future__ import annotations

import asyncio
import unittest

from collab_client.encryption import LocalEncryptionService, LocalKms, derive_key
from collab_client.encryption.kms import KEY_URI_PREFIX
from collab_client.utils import EncryptionError


class TestEncryption(unittest.TestCase):
    def setUp(self) -> None:
        self.master_key = "V8FvyhMZVZ1s31Q0IVcqUslq-9l0j5H8y1H2QZ9JRp0="
        self.kms = LocalKms(self.master_key, iterations=1)
        self.service = LocalEncryptionService(self.kms)
        self.key = f"{KEY_URI_PREFIX}one"

    def test_encrypt_decrypt_text(self) -> None:
        async def scenario() -> str:
            ciphertext = await self.service.encrypt_text(self.key, "hello world")
            self.assertNotEqual(ciphertext, "hello world")
            return await self.service.decrypt_text(self.key, ciphertext)

        self.assertEqual(asyncio.run(scenario()), "hello world")

    def test_wrong_key_fails(self) -> None:
        async def scenario() -> None:
            ciphertext = await self.service.encrypt_text(self.key, "secret")
            await self.service.decrypt_text(f"{KEY_URI_PREFIX}two", ciphertext)

        with self.assertRaises(EncryptionError):
            asyncio.run(scenario())

    def test_unknown_key_url_fails(self) -> None:
        with self.assertRaises(EncryptionError):
            asyncio.run(self.service.encrypt_text("https://elsewhere/keys/1", "secret"))
        with self.assertRaises(EncryptionError):
            asyncio.run(self.service.encrypt_text(None, "secret"))

    def test_derive_key_is_deterministic_per_uri(self) -> None:
        first = derive_key(self.master_key, self.key, iterations=1)
        self.assertEqual(first, derive_key(self.master_key, self.key, iterations=1))
        self.assertNotEqual(first, derive_key(self.master_key, f"{KEY_URI_PREFIX}two", iterations=1))

    def test_scr(self) -> None:
        async def scenario() -> dict:
            encrypted = await self.service.encrypt_scr(self.key, {"loc": "https://files/1"})
            return await self.service.decrypt_scr(self.key, encrypted)

        self.assertEqual(asyncio.run(scenario()), {"loc": "https://files/1"})

    def test_binary(self) -> None:
        async def scenario() -> bytes:
            scr, cdata = await self.service.encrypt_binary(b"\x89PNG" * 100)
            self.assertEqual(scr["size"], 400)
            return await self.service.decrypt_binary(scr, cdata)

        self.assertEqual(asyncio.run(scenario()), b"\x89PNG" * 100)

    def test_kms_authorizations(self) -> None:
        async def scenario() -> None:
            keys = await self.kms.create_unbound_keys(2)
            self.assertEqual(len({key["uri"] for key in keys}), 2)
            resource = await self.kms.create_resource([keys[0]["uri"]], ["user-1"])
            await self.kms.add_authorization(resource["uri"], "transcoder")
            auth_ids = [a["authId"] for a in await self.kms.list_authorizations(resource["uri"])]
            self.assertEqual(auth_ids, ["user-1", "transcoder"])

            await self.kms.remove_authorization(resource["uri"], "transcoder")
            with self.assertRaises(EncryptionError):
                await self.kms.remove_authorization(resource["uri"], "transcoder")

        asyncio.run(scenario())


if __name__ == "__main__":
    unittest.main()
