"""
Tests for the Unset sentinel and the small shared helpers.

This module verifies:
- Singleton identity, falsy semantics and representation of `Unset`.
- Copying and pickling preserve the singleton; the type is final.
- coalesce(), rename(), mirror() and ordinal() behaviour.
"""
import copy
import logging
import pickle
import unittest
from threading import Lock, Thread
from types import MappingProxyType
from unittest import TestCase

from declargs import Unset, UnsetType, coalesce, enable_logging, ordinal, rename
from declargs.utils import mirror


class UnsetTest(TestCase):
    """
    Test suite for the `Unset` singleton.
    """

    def testSingleton(self) -> None:
        """
        The constructor returns the module-level instance on every call.
        """
        self.assertIs(UnsetType(), Unset)
        self.assertIs(UnsetType(), UnsetType())

    def testRepr(self) -> None:
        self.assertEqual(repr(Unset), "Unset")

    def testFalsely(self) -> None:
        self.assertFalse(bool(Unset))

    def testNotEqualToNoneOrFalse(self) -> None:
        """
        Falsy does not imply equality with other falsy values (None/False).
        """
        self.assertNotEqual(Unset, None)
        self.assertNotEqual(Unset, False)  # noqa: E712

    def testCopyDeepcopyPickle(self) -> None:
        """
        copy(), deepcopy() and pickle round-trips preserve identity.
        """
        self.assertIs(copy.copy(Unset), Unset)
        self.assertIs(copy.deepcopy(Unset), Unset)
        self.assertIs(pickle.loads(pickle.dumps(Unset)), Unset)

    def testThreadSafetySingleton(self) -> None:
        """
        Concurrent constructions return the same instance.
        """
        results: list[UnsetType] = []
        lock: Lock = Lock()

        def worker():
            instance = UnsetType()
            with lock:
                results.append(instance)

        threads: list[Thread] = [Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(results), 16)
        for instance in results:
            self.assertIs(instance, Unset)

    def testFinalClass(self) -> None:
        with self.assertRaises(TypeError):
            type("UnsetType", (UnsetType,), {})

    def testUnionWithTypes(self) -> None:
        self.assertEqual(int | UnsetType, UnsetType | int)


class HelpersTest(TestCase):
    """
    Test suite for coalesce, rename, mirror and ordinal.
    """

    def testCoalesce(self) -> None:
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")
        self.assertIsNone(coalesce(Unset))
        self.assertIsNone(coalesce(None, "fallback"))
        self.assertEqual(coalesce(0, 1), 0)

    def testRename(self) -> None:
        @rename("renamed")
        def function():
            pass

        self.assertEqual((function.__name__, function.__qualname__), ("renamed", "renamed"))
        with self.assertRaises(TypeError):
            rename(1, "name")
        with self.assertRaises(TypeError):
            rename()

    def testMirrorFreezesContainers(self) -> None:
        class Holder:
            items = mirror("items")
            table = mirror("table")

            def __init__(self):
                self._items = [1, [2]]
                self._table = {"a": [1]}

        holder = Holder()
        self.assertEqual(holder.items, (1, (2,)))
        self.assertIsInstance(holder.table, MappingProxyType)
        self.assertEqual(holder.table["a"], (1,))
        with self.assertRaises(AttributeError):
            holder.items = ()

    def testOrdinal(self) -> None:
        self.assertEqual([ordinal(number) for number in (1, 2, 10)], ["first", "second", "tenth"])
        self.assertEqual([ordinal(number) for number in (11, 12, 13, 21, 22, 23, 104)], [
            "11th", "12th", "13th", "21st", "22nd", "23rd", "104th"
        ])


class LoggingTest(TestCase):
    """
    The package is silent by default and opt-in verbose through rich.
    """

    def testNullHandlerInstalled(self) -> None:
        handlers = logging.getLogger("declargs").handlers
        self.assertTrue(any(isinstance(handler, logging.NullHandler) for handler in handlers))

    def testEnableLoggingAttachesRichHandler(self) -> None:
        logger = logging.getLogger("declargs")
        level = logger.level
        handler = enable_logging(logging.INFO)
        try:
            self.assertIn(handler, logger.handlers)
            self.assertEqual(logger.level, logging.INFO)
        finally:
            logger.removeHandler(handler)
            logger.setLevel(level)


if __name__ == '__main__':
    unittest.main()
