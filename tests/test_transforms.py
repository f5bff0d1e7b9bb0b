"""Tests for decryption primitives."""

from __future__ import annotations

import asyncio
import unittest
from unittest import mock

from collab_client.conversation.transforms import (
    DecryptionContext,
    FieldOutcome,
    ObjectType,
    OutcomeStatus,
    decrypt_card_item,
    decrypt_text_prop,
)
from collab_client.utils import EncryptionError


class TestObjectType(unittest.TestCase):
    def test_parse_known_tags(self) -> None:
        self.assertIs(ObjectType.parse("imageURI"), ObjectType.IMAGE_URI)
        self.assertIs(ObjectType.parse("transcodedContent"), ObjectType.TRANSCODED_CONTENT)

    def test_parse_unknown_tag(self) -> None:
        self.assertIsNone(ObjectType.parse("ImageURI"))
        self.assertIsNone(ObjectType.parse(None))


class TestPrimitives(unittest.TestCase):
    def setUp(self) -> None:
        self.encryption = mock.Mock()
        self.encryption.decrypt_text = mock.AsyncMock(side_effect=lambda key, text: text.upper())
        self.ctx = DecryptionContext(self.encryption, failure_message="nope")

    def test_context_handlers_are_read_only(self) -> None:
        with self.assertRaises(TypeError):
            self.ctx.handlers[ObjectType.FILE] = None

    def test_text_prop_skips_absent_field(self) -> None:
        obj = {"displayName": ""}
        outcome = asyncio.run(decrypt_text_prop(self.ctx, "displayName", "key", obj))
        self.assertEqual(outcome.status, OutcomeStatus.SKIPPED)
        self.assertFalse(outcome.failed)
        self.encryption.decrypt_text.assert_not_called()

    def test_text_prop_failure_never_raises(self) -> None:
        self.encryption.decrypt_text.side_effect = EncryptionError("bad key")
        obj = {"content": "cipher"}
        with self.assertLogs("collab_client.conversation.transforms", level="WARNING"):
            outcome = asyncio.run(decrypt_text_prop(self.ctx, "content", "key", obj))

        self.assertEqual(obj["content"], "nope")
        self.assertTrue(outcome.failed)
        self.assertEqual(outcome, FieldOutcome("content", OutcomeStatus.PLACEHOLDER, "key", outcome.error))

    def test_card_item_bounds(self) -> None:
        cards = ["a", "b"]
        for index in (-1, 2, True):
            outcome = asyncio.run(decrypt_card_item(self.ctx, index, "key", cards))
            self.assertEqual(outcome.status, OutcomeStatus.SKIPPED)

        outcome = asyncio.run(decrypt_card_item(self.ctx, 1, "key", cards))
        self.assertEqual(outcome.status, OutcomeStatus.DECRYPTED)
        self.assertEqual(cards, ["a", "B"])


if __name__ == "__main__":
    unittest.main()
