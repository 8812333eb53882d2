"""
declargs help renderers.

- render(command): human help printed with rich. Sections: usage, description,
  subcommands table, flags, positionals, global flags, examples, epilog.
- render_llm(command): plain markdown describing the same surface with every
  detail spelled out (kinds, defaults, ranges, arities, aliases), meant to be
  pasted into a model's context. Output is deterministic.

Palette keys (override any through a __styles__ mapping in __main__)
- usage-label, program-name, usage-section, description-section, epilog-section
- group-label, argument-description, default, range
- flag-name, positional-name, metavar, variadic-metavar
- children-title, children-table, children, alias, children-description
- examples-label, examples-dot, example
- panel-title
"""
import inspect
from collections import defaultdict, deque

from rich.box import ROUNDED
from rich.console import Console, Group
from rich.containers import Lines
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .schema import *
from .utils import *

_HELP_FLAGS = (
    (("-h", "--help"), "show this help message and exit"),
    (("--help-llm",), "print a plain-text description for language models and exit"),
)


def _metavar(spec, /):
    return f"<{spec.kind.scalar.name}>"


def _positional_usage(spec, /):
    match spec.arity:
        case Arity.OPTIONAL:
            return f"[{spec.label}]"
        case Arity.ZERO_OR_MORE:
            return f"[{spec.label} ...]"
        case Arity.ONE_OR_MORE:
            return f"{spec.label} [{spec.label} ...]"
    return spec.label


def _positionals_of(command, /):
    schema = coalesce(command.arguments, command.options)
    return schema.positionals if schema else ()


def _route(command, /):
    return " ".join(step.name for step in command.path)


def render(command, /, *, console=Unset):
    """
    Print human help for a command node.

    When colorful is False styling is dropped; when fancy is True everything is
    wrapped in a panel titled after the command.
    """
    console = coalesce(console, Console())
    styles = defaultdict(str, {
        # === Head sections ===
        "usage-label": "bold #00E6FF",
        "program-name": "bold #FF4D94",
        "usage-section": "bold #36C5F0",
        "description-section": "italic #A3A3A3",
        "epilog-section": "#737373",

        # === Groups / arguments ===
        "group-label": "bold #FFFFFF",
        "argument-description": "#9CA3AF",
        "default": "italic #6B7280",
        "range": "italic #6B7280",

        # === Names / metavars ===
        "flag-name": "bold #22C55E",
        "positional-name": "bold #00E6FF",
        "metavar": "bold #FFD600",
        "variadic-metavar": "bold italic #FFD600",

        # === Children table ===
        "children-title": "bold #FFFFFF",
        "children-table": "#4B5563",
        "children": "bold #36C5F0",
        "alias": "#36C5F0 dim",
        "children-description": "#9CA3AF",

        # === Examples ===
        "examples-label": "bold #22C55E",
        "examples-dot": "#22C55E dim",
        "example": "#E5E7EB",

        # === Fancy panel ===
        "panel-title": "bold #FF4D94",
    } | getattr(__import__('__main__'), "__styles__", {}))

    def styler(style):
        return styles[style] if command.colorful else ""

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not command.colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), style)

    renders = []
    width = console.width - 4 * command.fancy

    # Usage line with a hanging indent for wrapped items
    usage = Text()
    usage.append("usage", styler("usage-label")).append(":")
    usage.append(" ")
    usage.append(text(_route(command), styler("program-name")))
    usage.append(" ")
    offset = len(usage)

    inputs = deque()
    if command.root.globals and command.parent is Unset:
        inputs.append(text("[global flags]", styler("usage-section")))
    if command.children:
        inputs.append(text("<subcommand>", styler("usage-section")))
        inputs.append(text("...", styler("usage-section")))
    else:
        if command.options and command.options.flags:
            inputs.append(text("[flags]", styler("usage-section")))
        for spec in _positionals_of(command):
            style = "variadic-metavar" if spec.arity.variadic else "metavar"
            inputs.append(text(_positional_usage(spec), styler(style)))
        if command.parent is not Unset and command.root.globals:
            inputs.append(text("[global flags]", styler("usage-section")))

    try:
        lines = Lines([inputs.popleft()])
    except IndexError:
        lines = Lines()
    while inputs:
        if len(lines[-1]) + 1 + len(input := inputs.popleft()) > width - offset:
            lines.append(input)
        else:
            lines[-1].append(Text(" ") + input)
    try:
        usage.append(lines.pop(0))
    except IndexError:
        pass
    for line in lines:
        usage.append("\n").append(" " * offset).append(line)
    renders.append(usage.append("\n"))

    if command.descr:
        renders.append(text(command.descr, styler("description-section")).append("\n"))

    # Subcommands table
    if command.children:
        table = Table(
            "name", "help",
            title=text("subcommands" if command.parent else "commands", styler("children-title")),
            width=int(width * (2 / 3)),
            box=ROUNDED,
            style=styler("children-table"),
            header_style=styler("children-title"),
        )
        for name, child in command.children.items():
            label = text(name, styler("children"))
            if child.aliases:
                label = Text.assemble(label, " ", text("(%s)" % ", ".join(child.aliases), styler("alias")))
            if descr := child.descr:
                help = text(descr, styler("children-description"))
            else:
                help = Text.assemble(
                    text("no description", styler("children-description")),
                    " — ",
                    text(f"run '{_route(child)} --help' for details", styler("examples-label")),
                )
            table.add_row(label, help)
        renders.append(table)

    # Argument sections: (label, [(names, description)])
    sections = []
    if not command.children:
        if command.options and command.options.flags:
            sections.append(("flags", [_flag_row(spec, styler, text) for spec in command.options.flags]))
        if positionals := _positionals_of(command):
            sections.append(("positionals", [(
                [text(spec.label, styler("positional-name"))],
                text(spec.help, styler("argument-description")),
            ) for spec in positionals]))
    if command.root.globals and command.root.globals.flags:
        sections.append(("global flags", [_flag_row(spec, styler, text) for spec in command.root.globals.flags]))
    sections.append(("help", [
        ([text(name, styler("flag-name")) for name in names], text(descr, styler("argument-description")))
        for names, descr in _HELP_FLAGS
    ]))

    groups = Text("\n" if command.children else "")
    padding = 2
    indent = 24
    for index, (label, rows) in enumerate(sections):
        groups.append(text(label, styler("group-label"))).append(":")
        groups.append("\n")
        for names, descr in rows:
            segments = deque(names)
            lines = Lines([segments.popleft()])
            while segments:
                segment = segments.popleft()
                if len(lines[-1]) + 3 + len(segment) > width - padding * (4 * (len(lines) > 1)):
                    lines.append(segment)
                else:
                    lines[-1].append(Text(" " if segment.plain.startswith("<") else ", ") + segment)

            section = Text()
            section.append(" " * padding).append(lines.pop(0))
            for line in lines:
                section.append("\n").append(" " * padding * 4).append(line)

            if descr:
                if lines or len(section) >= indent:
                    section.append("\n").append(" " * indent)
                else:
                    section.append(" " * (indent - len(section)))
                wrapped = descr.wrap(console, max(width - indent, 8))
                try:
                    section.append(wrapped.pop(0))
                except IndexError:
                    pass
                for line in wrapped:
                    section.append("\n").append(" " * indent).append(line)

            groups.append(section).append("\n")
        groups.append("\n" * (index < len(sections) - 1))
    renders.append(groups)

    if command.examples:
        padding = len(dot := text(" • ", styler("examples-dot")))
        examples = Text()
        examples.append(text("examples", styler("examples-label")).append(":"))
        examples.append("\n")
        for example in map(lambda x: text(x, styler("example")), command.examples):
            for index, segment in enumerate(example.wrap(console, width - padding)):
                examples.append(dot if index == 0 else " " * padding).append(segment).append("\n")
        renders.append(examples)

    if command.epilog:
        renders.append(text(command.epilog, styler("epilog-section")).append("\n"))

    renders[-1].rstrip()

    renderable = Group(*renders)
    if command.fancy:
        renderable = Panel(
            renderable,
            title=Text.assemble("[", " ", f"{_route(command)} HELP".upper(), " ", "]", style=styler("panel-title")),
            title_align="left",
        )
    console.print(renderable)


def _flag_row(spec, styler, text, /):
    names = []
    if spec.short is not Unset:
        names.append(text("-" + spec.short, styler("flag-name")))
    names.append(text(spec.label, styler("flag-name")))
    if not spec.boolean:
        names.append(text(_metavar(spec), styler("metavar")))

    descr = text(spec.help, styler("argument-description"))
    extras = []
    if spec.default is not Unset:
        extras.append(text(f"(default: {spec.default})", styler("default")))
    if spec.range is not Unset:
        extras.append(text("(range: %d-%d)" % spec.range, styler("range")))
    if spec.kind.slice:
        extras.append(text("(repeatable)", styler("default")))
    if extras:
        descr = Text(" ").join(part for part in (descr, *extras) if part)
    return names, descr


def _llm_flag(spec, /):
    head = f"`{spec.label}"
    if not spec.boolean:
        head += f" {_metavar(spec)}"
    head += "`"
    details = [f"kind: {spec.kind.name}"]
    if spec.short is not Unset:
        details.append(f"short: `-{spec.short}`")
    if spec.default is not Unset:
        details.append(f"default: `{spec.default}`")
    if spec.range is not Unset:
        details.append("range: %d-%d" % spec.range)
    if spec.kind.slice:
        details.append("repeatable" + (", comma separated" if spec.split else ""))
    if spec.kind.optional:
        details.append("optional")
    line = f"- {head} ({'; '.join(details)})"
    return line + (f": {spec.help}" if spec.help else "")


def render_llm(command, /):
    """
    Describe a command node as markdown for language models.
    """
    route = _route(command)
    lines = [f"# {route}", ""]
    if command.descr:
        lines += [inspect.cleandoc(str(command.descr)), ""]

    usage = [route]
    if command.children:
        usage.append("<subcommand>")
    else:
        if command.options and command.options.flags:
            usage.append("[flags]")
        usage += [_positional_usage(spec) for spec in _positionals_of(command)]
    lines += ["## Usage", "", f"    {' '.join(usage)}", ""]

    if command.children:
        lines += ["## Subcommands", ""]
        for name, child in command.children.items():
            line = f"- `{name}`"
            if child.aliases:
                line += " (aliases: %s)" % ", ".join(f"`{alias}`" for alias in child.aliases)
            if child.children:
                line += " [group]"
            if child.descr:
                line += f": {str(child.descr).splitlines()[0]}"
            lines.append(line)
        lines += ["", f"Run `{route} <subcommand> --help-llm` for details on a subcommand.", ""]
    else:
        if command.options and command.options.flags:
            lines += ["## Flags", ""]
            lines += [_llm_flag(spec) for spec in command.options.flags]
            lines.append("")
        if positionals := _positionals_of(command):
            lines += ["## Positionals", ""]
            for spec in positionals:
                line = f"- `{spec.label}` (index: {spec.index}; arity: {spec.arity.name.lower().replace('_', '-')}; kind: {spec.kind.name})"
                lines.append(line + (f": {spec.help}" if spec.help else ""))
            lines.append("")

    if command.root.globals and command.root.globals.flags:
        lines += ["## Global flags", ""]
        lines += [_llm_flag(spec) for spec in command.root.globals.flags]
        lines.append("")

    lines += [
        "## Conventions",
        "",
        "- Flags accept `--name value` or `--name=value`; booleans take no value (`--name=false` to unset).",
        "- Short boolean flags can be combined (`-abc`).",
        "- Everything after `--` is passed through untouched.",
    ]
    if command.epilog:
        lines += ["", str(command.epilog)]
    return "\n".join(lines) + "\n"


__all__ = (
    "render",
    "render_llm",
)
