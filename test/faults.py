"""
Faults module tests (codes, rendering, triggering and enrichment).

Conventions
- Test method names follow CamelCase per project convention.
- Rendering is checked on a file-backed console without colors.
"""

import copy
import io
import unittest
import warnings
from unittest import TestCase, mock

from rich.console import Console

from declargs import (
    CommandException,
    ConversionError,
    DuplicatedFlagWarning,
    FaultCode,
    UnknownFlagError,
    getdoc,
    trigger,
)


def rendered(fault):
    console = Console(file=io.StringIO(), width=100, color_system=None)
    console.print(fault)
    return console.file.getvalue()


def conversion(**options):
    try:
        try:
            int("x")
        except ValueError as exception:
            raise ConversionError(
                "invalid value 'x' for flag '--count': expected int64",
                title="invalid value",
                code=FaultCode.CONVERSION,
                hint="pass a valid int64",
                **options,
            ) from exception
    except ConversionError as fault:
        return fault


class TestFaultCodes(TestCase):
    """Stable identifiers and host lookups."""

    def testCodesAreStable(self):
        self.assertEqual(FaultCode.UNKNOWN_FLAG, 11112)
        self.assertEqual(FaultCode.DUPLICATED_FLAG, 12115)
        self.assertEqual(FaultCode.CONVERSION.normalize(), "11131")

    def testGetdocWithoutHostMapping(self):
        self.assertIsNone(getdoc(FaultCode.UNKNOWN_FLAG))
        with self.assertRaises(TypeError):
            getdoc(11112)


class TestFaultRendering(TestCase):
    """Rich rendering of errors and warnings."""

    def testHeaderMessageAndHint(self):
        output = rendered(conversion(prog="tool", colorful=False))
        self.assertIn("[ tool — 11131 | Invalid Value ]", output)
        self.assertIn("invalid value 'x' for flag '--count'", output)
        self.assertIn("→ pass a valid int64", output)
        self.assertNotIn("caused by", output)

    def testVerboseShowsCauseChain(self):
        output = rendered(conversion(prog="tool", verbose=True))
        self.assertIn("caused by ValueError: invalid literal for int()", output)

    def testFancyUsesPanel(self):
        output = rendered(conversion(prog="tool", fancy=True))
        self.assertIn("╭", output)

    def testWarningRendering(self):
        output = rendered(DuplicatedFlagWarning("flag '--name' given more than once", prog="tool", title="duplicated flag"))
        self.assertIn("Duplicated Flag", output)


class TestTrigger(TestCase):
    """Surfacing faults in library and shell modes."""

    def testRaisesEnrichedCopyOutsideShell(self):
        fault = conversion()
        with self.assertRaises(ConversionError) as context:
            trigger(fault, prog="tool", verbose=True)
        self.assertEqual(context.exception.options["prog"], "tool")
        self.assertIsInstance(context.exception.__cause__, ValueError)
        self.assertNotIn("prog", fault.options)

    def testShellPrintsAndExits(self):
        stderr = io.StringIO()
        with mock.patch("declargs.faults.console", Console(file=stderr, color_system=None)):
            with self.assertRaises(SystemExit) as context:
                trigger(UnknownFlagError("unknown flag '--nope'", code=FaultCode.UNKNOWN_FLAG), shell=True)
        self.assertEqual(context.exception.code, 1)
        self.assertIn("unknown flag '--nope'", stderr.getvalue())

    def testWarningsWarnOutsideShell(self):
        with self.assertWarns(DuplicatedFlagWarning):
            trigger(DuplicatedFlagWarning("twice"))

    def testWarningsPrintedInShell(self):
        stderr = io.StringIO()
        with mock.patch("declargs.faults.console", Console(file=stderr, color_system=None)):
            with warnings.catch_warnings():
                warnings.simplefilter("error")
                trigger(DuplicatedFlagWarning("twice"), shell=True)
        self.assertIn("twice", stderr.getvalue())

    def testRejectsObjectsWithoutProtocol(self):
        with self.assertRaises(TypeError):
            trigger(ValueError("plain"))

    def testReplaceKeepsTypeAndCause(self):
        fault = conversion(field="count")
        replaced = copy.replace(fault, hint="other")
        self.assertIs(type(replaced), ConversionError)
        self.assertEqual(replaced.options["field"], "count")
        self.assertEqual(replaced.options["hint"], "other")
        self.assertIs(replaced.__cause__, fault.__cause__)

    def testOptionsAreReadOnly(self):
        with self.assertRaises(TypeError):
            CommandException("message").options["code"] = 1


if __name__ == "__main__":
    unittest.main()
