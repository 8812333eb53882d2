"""
Help renderer tests (rich human help and the LLM-oriented markdown).

Conventions
- Test method names follow CamelCase per project convention.
- Rich output is captured with a file-backed console without colors.
"""

import io
import unittest
from dataclasses import dataclass
from unittest import TestCase

from rich.console import Console

from declargs import Command, Port, flag, positional, render, render_llm


@dataclass
class Globals:
    verbose: bool = flag(short="v", help="chatty output")


@dataclass
class Deploy:
    http: Port = flag(range="1-65535", default="8080")
    tags: list[str] = flag(short="t", help="labels to attach")
    service: str = positional(0, help="service to deploy")
    extra: list[str] = positional("1*")


def build(**options):
    app = Command("app", globals=Globals, descr="Deployment tool.", **options)

    @app.command(aliases=("d",), examples=("app deploy web",), epilog="Deploys are logged.")
    def deploy(options: Deploy):
        """Deploy a service."""

    app.group("cloud")
    return app


def capture(command):
    console = Console(file=io.StringIO(), width=100, color_system=None)
    render(command, console=console)
    return console.file.getvalue()


class TestRender(TestCase):
    """Human help printed with rich."""

    def testLeafSections(self):
        output = capture(build().children["deploy"])
        self.assertIn("usage: app deploy [flags] <service> [<extra> ...] [global flags]", output)
        self.assertIn("Deploy a service.", output)
        self.assertIn("--http <port>", output)
        self.assertIn("(default: 8080)", output)
        self.assertIn("(range: 1-65535)", output)
        self.assertIn("-t, --tags <str>", output)
        self.assertIn("(repeatable)", output)
        self.assertIn("service to deploy", output)
        self.assertIn("-v, --verbose", output)
        self.assertIn("-h, --help", output)
        self.assertIn("--help-llm", output)

    def testSectionOrder(self):
        output = capture(build().children["deploy"])
        order = [output.index(label) for label in ("flags:", "positionals:", "global flags:", "help:", "examples:")]
        self.assertEqual(order, sorted(order))

    def testExamplesAndEpilog(self):
        output = capture(build().children["deploy"])
        self.assertIn("• app deploy web", output)
        self.assertTrue(output.rstrip().endswith("Deploys are logged."))

    def testGroupListsChildren(self):
        output = capture(build())
        self.assertIn("usage: app [global flags] <subcommand> ...", output)
        self.assertIn("deploy (d)", output)
        self.assertIn("no description", output)
        self.assertIn("Deployment tool.", output)

    def testGlobalFlagsPlacementInUsage(self):
        app = build()
        cloud = app.children["cloud"]

        @cloud.command
        def sync():
            pass

        self.assertIn("usage: app [global flags] <subcommand> ...", capture(app))
        self.assertIn("usage: app cloud <subcommand> ...", capture(cloud))
        self.assertIn("usage: app cloud sync [global flags]", capture(cloud.children["sync"]))

    def testFancyWrapsInPanel(self):
        output = capture(build(fancy=True).children["deploy"])
        self.assertIn("APP DEPLOY HELP", output)
        self.assertIn("╭", output)


class TestRenderLLM(TestCase):
    """Markdown help for language models."""

    def testLeafDocument(self):
        document = render_llm(build().children["deploy"])
        self.assertTrue(document.startswith("# app deploy\n\nDeploy a service.\n"))
        self.assertIn("    app deploy [flags] <service> [<extra> ...]", document)
        self.assertIn("- `--http <port>` (kind: port; default: `8080`; range: 1-65535)", document)
        self.assertIn("- `--tags <str>` (kind: list[str]; short: `-t`; repeatable): labels to attach", document)
        self.assertIn("- `<service>` (index: 0; arity: required; kind: str): service to deploy", document)
        self.assertIn("- `<extra>` (index: 1; arity: zero-or-more; kind: list[str])", document)
        self.assertIn("- `--verbose` (kind: bool; short: `-v`): chatty output", document)
        self.assertTrue(document.endswith("Deploys are logged.\n"))

    def testGroupDocument(self):
        document = render_llm(build())
        self.assertIn("## Subcommands", document)
        self.assertIn("- `deploy` (aliases: `d`): Deploy a service.", document)
        self.assertIn("- `cloud`", document)
        self.assertNotIn("## Flags", document)

    def testDeterministic(self):
        self.assertEqual(render_llm(build()), render_llm(build()))


if __name__ == "__main__":
    unittest.main()
