"""
Utils module behavioral tests (sentinel, coalesce, rename, mirror, ordinal).

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import copy
import unittest
from unittest import TestCase

from navarch.utils import Unset, UnsetType, coalesce, rename, mirror, ordinal


class TestUnset(TestCase):
    """Behavioral tests for the Unset sentinel."""

    def testSingleton(self):
        self.assertIs(UnsetType(), Unset)
        self.assertIs(copy.copy(Unset), Unset)
        self.assertIs(copy.deepcopy(Unset), Unset)

    def testFalseyAndPrintable(self):
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")

    def testNotSubclassable(self):
        with self.assertRaises(TypeError):
            class Other(UnsetType):
                pass

    def testUnionSupport(self):
        self.assertIsInstance("name", str | Unset)
        self.assertIsInstance(Unset, str | Unset)
        self.assertNotIsInstance(1, str | Unset)


class TestHelpers(TestCase):
    """Behavioral tests for coalesce, rename, mirror and ordinal."""

    def testCoalescePreservesFalseyValues(self):
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")
        self.assertIsNone(coalesce(None, "fallback"))
        self.assertEqual(coalesce(0, 1), 0)
        self.assertIsNone(coalesce(Unset))

    def testRenameBothForms(self):
        def wrapped():
            pass

        self.assertEqual(rename(wrapped, "other").__name__, "other")

        @rename("decorated")
        def second():
            pass

        self.assertEqual(second.__qualname__, "decorated")

    def testRenameRejectsBadArguments(self):
        with self.assertRaises(TypeError):
            rename(1, "name")
        with self.assertRaises(TypeError):
            rename()

    def testMirrorCopiesContainers(self):
        class Holder:
            items = mirror("items")
            missing = mirror("missing")

            def __init__(self):
                self._items = ["a"]
                self._missing = Unset

        holder = Holder()
        holder.items.append("b")
        self.assertEqual(holder.items, ["a"])
        self.assertIs(holder.missing, Unset)
        with self.assertRaises(AttributeError):
            holder.items = []

    def testOrdinal(self):
        self.assertEqual(ordinal(1), "first")
        self.assertEqual(ordinal(10), "tenth")
        self.assertEqual(ordinal(11), "11th")
        self.assertEqual(ordinal(21), "21st")
        self.assertEqual(ordinal(22), "22nd")
        self.assertEqual(ordinal(23), "23rd")
        self.assertEqual(ordinal(112), "112th")


if __name__ == "__main__":
    unittest.main()
