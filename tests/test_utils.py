"""Tests for utility helpers."""

from __future__ import annotations

import unittest

from collab_client.utils import camel_case, chunked, iter_items, uniq


class TestUtils(unittest.TestCase):
    def test_chunked(self) -> None:
        self.assertEqual(chunked([1, 2, 3, 4, 5], 2), [[1, 2], [3, 4], [5]])
        self.assertEqual(chunked([], 3), [])
        with self.assertRaises(ValueError):
            chunked([1], 0)

    def test_uniq_preserves_order(self) -> None:
        self.assertEqual(uniq([80, 40, 80, 110, 40]), [80, 40, 110])

    def test_camel_case(self) -> None:
        self.assertEqual(camel_case("encrypted_displayName"), "encryptedDisplayName")
        self.assertEqual(camel_case("encrypted_imageURI"), "encryptedImageURI")
        self.assertEqual(camel_case("encrypted_scr"), "encryptedScr")

    def test_iter_items(self) -> None:
        self.assertEqual(list(iter_items({"items": [1, 2]})), [1, 2])
        self.assertEqual(list(iter_items({"items": None})), [])
        self.assertEqual(list(iter_items(None)), [])


if __name__ == "__main__":
    unittest.main()
