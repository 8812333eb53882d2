"""
Schema module tests (dataclass introspection and declaration validation).

Scope
- Flag naming, defaults, shorts, ranges and the reserved help names.
- Positional tags, arities and ordering constraints.
- Introspection caching and structural equality of specs.

Conventions
- Test method names follow CamelCase per project convention.
- Structures are plain dataclasses declared inside each test.
"""

import dataclasses
import datetime
import unittest
from dataclasses import dataclass
from unittest import TestCase

from declargs import (
    Arity,
    FlagSpec,
    Port,
    PositionalSpec,
    Schema,
    SchemaError,
    Unset,
    UnsetType,
    flag,
    introspect,
    positional,
)


class TestFlagDeclarations(TestCase):
    """Derivation of flag specs from dataclass fields."""

    def testNamesDerivedFromFields(self):
        @dataclass
        class Options:
            dry_run: bool = False
            _output_dir: str = "out"

        schema = introspect(Options)
        self.assertEqual([spec.name for spec in schema.flags], ["dry-run", "output-dir"])
        self.assertEqual(schema.lookup("output-dir").field, "_output_dir")

    def testExplicitNameAndShort(self):
        @dataclass
        class Options:
            verbose: bool = flag("loud", short="v", help="  chatty output ")

        spec = introspect(Options).lookup_short("v")
        self.assertEqual(spec.name, "loud")
        self.assertEqual(spec.help, "chatty output")
        self.assertEqual(spec.label, "--loud")
        self.assertIsNone(introspect(Options).lookup("verbose"))

    def testPlainDefaultsBecomeRawDefaults(self):
        @dataclass
        class Options:
            level: int = 3
            timeout: datetime.timedelta = datetime.timedelta(seconds=90)
            tags: list[str] = dataclasses.field(default_factory=lambda: ["a", "b"])

        schema = introspect(Options)
        self.assertEqual(schema.lookup("level").default, "3")
        self.assertEqual(schema.lookup("timeout").default, "1m30s")
        self.assertEqual(schema.lookup("tags").default, "a,b")
        self.assertEqual(schema.lookup("tags").initial(), ["a", "b"])

    def testAbsentValuesAreZeroOrUnset(self):
        @dataclass
        class Options:
            count: int = flag()
            name: str = flag()
            tags: list[str] = flag()
            port: Port | UnsetType = flag()

        schema = introspect(Options)
        self.assertEqual(schema.lookup("count").initial(), 0)
        self.assertEqual(schema.lookup("name").initial(), "")
        self.assertEqual(schema.lookup("tags").initial(), [])
        self.assertIs(schema.lookup("port").initial(), Unset)

    def testSliceInitialIsFresh(self):
        spec = FlagSpec("tags", list[str], default="x")
        spec.initial().append("y")
        self.assertEqual(spec.initial(), ["x"])

    def testInvalidDefaultRejected(self):
        with self.assertRaises(SchemaError):
            FlagSpec("count", int, default="many")

    def testOptionalRejectsDefault(self):
        with self.assertRaises(SchemaError):
            FlagSpec("count", int | UnsetType, default="1")

    def testReservedNamesRejected(self):
        for name in ("help", "help-llm"):
            with self.subTest(name=name):
                with self.assertRaises(SchemaError):
                    FlagSpec(name, bool)
        with self.assertRaises(SchemaError):
            FlagSpec("host", str, short="h")

    def testMalformedNamesRejected(self):
        for name in ("-x", "1st", "a--b", "snake_case", "trailing-"):
            with self.subTest(name=name):
                with self.assertRaises(SchemaError):
                    FlagSpec(name, str)

    def testMalformedShortsRejected(self):
        for short in ("ab", "-", "=", " "):
            with self.subTest(short=short):
                with self.assertRaises(SchemaError):
                    FlagSpec("name", str, short=short)

    def testRangeOnlyOnPorts(self):
        self.assertEqual(FlagSpec("http", Port, range="1-1024").range, (1, 1024))
        self.assertEqual(FlagSpec("ports", list[Port], range="1-1024").range, (1, 1024))
        with self.assertRaises(SchemaError):
            FlagSpec("count", int, range="1-10")
        with self.assertRaises(SchemaError):
            FlagSpec("http", Port, range="10-1")

    def testDefaultOutsideRangeRejected(self):
        with self.assertRaises(SchemaError):
            FlagSpec("http", Port, range="1-1024", default="8080")

    def testSplitOnlyOnSlices(self):
        with self.assertRaises(SchemaError):
            FlagSpec("name", str, split=True)

    def testUnsupportedAnnotationRejected(self):
        @dataclass
        class Options:
            data: dict = flag()

        with self.assertRaises(SchemaError):
            introspect(Options)

    def testDuplicateNamesRejected(self):
        @dataclass
        class Options:
            first: bool = flag("same")
            second: bool = flag("same")

        with self.assertRaises(SchemaError):
            introspect(Options)

    def testDuplicateShortsRejected(self):
        @dataclass
        class Options:
            first: bool = flag(short="x")
            second: bool = flag(short="x")

        with self.assertRaises(SchemaError):
            introspect(Options)

    def testNonInitFieldsSkipped(self):
        @dataclass
        class Options:
            verbose: bool = False
            cache: dict = dataclasses.field(init=False, default_factory=dict)

        self.assertEqual([spec.name for spec in introspect(Options).flags], ["verbose"])


class TestPositionalDeclarations(TestCase):
    """Derivation and ordering of positional specs."""

    def testTagsAndArities(self):
        @dataclass
        class Options:
            service: str = positional(0)
            region: str = positional("1?")
            args: list[str] = positional("2*")

        schema = introspect(Options)
        self.assertEqual([spec.arity for spec in schema.positionals], [Arity.REQUIRED, Arity.OPTIONAL, Arity.ZERO_OR_MORE])
        self.assertEqual([spec.label for spec in schema.positionals], ["<service>", "<region>", "<args>"])
        self.assertTrue(schema.variadic)

    def testPositionalsSortedByIndex(self):
        @dataclass
        class Options:
            second: str = positional(1)
            first: str = positional(0)

        self.assertEqual([spec.field for spec in introspect(Options).positionals], ["first", "second"])

    def testMalformedTagsRejected(self):
        for tag in ("x", "1!", "-1", "1**"):
            with self.subTest(tag=tag):
                with self.assertRaises(SchemaError):
                    positional(tag)
        with self.assertRaises(TypeError):
            positional(True)

    def testGapsRejected(self):
        with self.assertRaises(SchemaError):
            Schema((), (PositionalSpec(0, str), PositionalSpec(2, str)))

    def testVariadicMustBeLast(self):
        with self.assertRaises(SchemaError):
            Schema((), (
                PositionalSpec(0, list[str], arity=Arity.ZERO_OR_MORE),
                PositionalSpec(1, str, arity=Arity.OPTIONAL),
            ))

    def testRequiredAfterOptionalRejected(self):
        with self.assertRaises(SchemaError):
            Schema((), (PositionalSpec(0, str, arity=Arity.OPTIONAL), PositionalSpec(1, str)))

    def testVariadicNeedsList(self):
        with self.assertRaises(SchemaError):
            PositionalSpec(0, str, arity=Arity.ONE_OR_MORE)
        with self.assertRaises(SchemaError):
            PositionalSpec(0, list[str])

    def testFieldBoundOnce(self):
        with self.assertRaises(SchemaError):
            Schema((FlagSpec("name", str, field="x"),), (PositionalSpec(0, str, field="x"),))


class TestIntrospection(TestCase):
    """Caching, equality and instantiation of derived schemas."""

    def testIntrospectionIsIdempotent(self):
        @dataclass
        class Options:
            verbose: bool = flag(short="v")

        self.assertIs(introspect(Options), introspect(Options))

    def testStructurallyEqualSpecs(self):
        self.assertEqual(FlagSpec("name", str, default="x"), FlagSpec("name", str, default="x"))
        self.assertNotEqual(FlagSpec("name", str), FlagSpec("name", int))
        self.assertEqual(hash(FlagSpec("name", str)), hash(FlagSpec("name", str)))

    def testNonDataclassRejected(self):
        class Options:
            verbose: bool = False

        with self.assertRaises(SchemaError):
            introspect(Options)

    def testSchemaWithoutTargetBuildsNamespace(self):
        schema = Schema((FlagSpec("name", str),))
        self.assertEqual(schema.instantiate({"name": "x"}).name, "x")

    def testReprNamesTheType(self):
        self.assertTrue(repr(FlagSpec("name", str)).startswith("flag-spec(name='name'"))

    def testSpecsAreReadOnly(self):
        spec = FlagSpec("name", str)
        with self.assertRaises(AttributeError):
            spec.name = "other"


if __name__ == "__main__":
    unittest.main()
