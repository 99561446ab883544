"""Test size vector helpers."""
from __future__ import annotations

import unittest

from layerkit.shape import as_size, format_size, is_valid_size, pad_size


class SizeTest(unittest.TestCase):
    """Test validity checks and formatting of sizes."""

    def test_valid_sizes(self) -> None:
        """test positive integer tuples are valid"""
        self.assertTrue(is_valid_size((28, 28, 1)))
        self.assertTrue(is_valid_size((10,)))

    def test_invalid_sizes(self) -> None:
        """test empty, non-positive and non-integer sizes are invalid"""
        self.assertFalse(is_valid_size(None))
        self.assertFalse(is_valid_size(()))
        self.assertFalse(is_valid_size((0, 3, 1)))
        self.assertFalse(is_valid_size((-2, 3, 1)))
        self.assertFalse(is_valid_size((2.0, 3, 1)))
        self.assertFalse(is_valid_size((True, 3)))

    def test_pad_size(self) -> None:
        """test trailing singleton padding"""
        self.assertEqual(pad_size((5,), 3), (5, 1, 1))
        self.assertEqual(pad_size((2, 3, 4), 2), (2, 3, 4))

    def test_format(self) -> None:
        """test size rendering"""
        self.assertEqual(format_size((28, 28, 1)), "28×28×1")
        self.assertEqual(format_size(None), "(unknown)")
        self.assertEqual(as_size(7), (7,))


if __name__ == "__main__":
    unittest.main()
