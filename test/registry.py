"""
Registry tests (caller-owned schema catalogues for tooling).

Conventions
- Test method names follow CamelCase per project convention.
"""

import json
import unittest
from dataclasses import dataclass
from unittest import TestCase

from declargs import Command, Port, Registry, Schema, flag, introspect, positional


@dataclass
class Globals:
    verbose: bool = flag(short="v")


@dataclass
class Deploy:
    http: Port = flag(range="1-65535", default="8080", help="listen port")
    service: str = positional(0)


class TestRegistry(TestCase):
    """Registration, lookup and description of schemas."""

    def testRegisterByClassName(self):
        registry = Registry()
        self.assertIs(registry.register(Deploy), Deploy)
        self.assertIn("Deploy", registry)
        self.assertEqual(len(registry), 1)
        self.assertIs(registry.schema("Deploy"), introspect(Deploy))

    def testRegisterAsDecorator(self):
        registry = Registry()

        @registry.register
        @dataclass
        class Options:
            name: str = flag()

        self.assertEqual(list(registry), ["Options"])

    def testNamesAreUnique(self):
        registry = Registry()
        registry.register(Deploy, "deploy")
        with self.assertRaises(ValueError):
            registry.register(Globals, "deploy")

    def testSchemaWithoutTargetNeedsName(self):
        with self.assertRaises(ValueError):
            Registry().register(Schema())
        registry = Registry()
        registry.register(Schema(), "empty")
        self.assertIn("empty", registry)

    def testMissingName(self):
        with self.assertRaises(KeyError):
            Registry().schema("nothing")

    def testRegistriesAreIndependent(self):
        first, second = Registry(), Registry()
        first.register(Deploy)
        self.assertNotIn("Deploy", second)

    def testDescribe(self):
        registry = Registry()
        registry.register(Deploy)
        description = registry.describe("Deploy")
        self.assertEqual(description["target"], "Deploy")
        self.assertEqual(description["flags"], [{
            "name": "http",
            "short": None,
            "kind": "port",
            "default": "8080",
            "help": "listen port",
            "range": [1, 65535],
            "repeatable": False,
            "split": False,
            "optional": False,
            "field": "http",
        }])
        self.assertEqual(description["positionals"], [{
            "name": "service",
            "index": 0,
            "arity": "required",
            "kind": "str",
            "help": "",
            "field": "service",
        }])
        json.dumps(registry.describe_all())

    def testOfCommandTree(self):
        app = Command("app", globals=Globals)

        @app.command
        def deploy(options: Deploy):
            pass

        cloud = app.group("cloud")

        @cloud.command
        def sync():
            pass

        registry = Registry.of(app)
        self.assertEqual(list(registry), ["app <globals>", "app deploy", "app cloud sync"])
        self.assertIs(registry.schema("app deploy"), introspect(Deploy))


if __name__ == "__main__":
    unittest.main()
