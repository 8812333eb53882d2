"""
declargs faults (errors and warnings) and rendering.

Scope
- FaultCode: stable numeric identifiers for every user-facing issue, grouped by
  domain (routing, flags, positionals, conversion, warnings).
- CommandException / CommandWarning: base types carrying a message plus an
  immutable options mapping (code, title, hint and context such as flag, token,
  field, raw, kind, index). They know how to render themselves with rich.
- SchemaError: configuration error raised while deriving a schema. It is a
  programmer mistake, so it is a plain ValueError and never goes through trigger().
- trigger(): surface a fault honoring shell/fancy/colorful/verbose.
- getdoc(): optional description lookup for a code from the host application.

Rendering
- Header "[ prog — code | title ]", then the message, then a hint arrow.
- fancy wraps everything in a Panel; colorful applies the palette, which the host
  may override with a __styles__ mapping in __main__.
- verbose appends the cause chain (useful for conversion errors whose root cause
  is a ValueError raised by the kind parser).

Integration
- The binder builds faults with their context and returns them inside Failed(...).
- The command layer merges runtime options via trigger(); in non-shell mode the
  exception is raised, in shell mode it is printed to stderr and the process exits.
"""
import copy
import os
import sys
import warnings
from abc import ABC
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping
    - routing (1110x): UNKNOWN_COMMAND, UNKNOWN_SUBCOMMAND, MISSING_COMMAND
    - flags (1111x): UNKNOWN_FLAG, MISSING_VALUE
    - positionals (1112x): NOT_ENOUGH_POSITIONALS, MISSING_POSITIONAL
    - conversion (1113x): CONVERSION, OUT_OF_RANGE
    - warnings (1211x): DUPLICATED_FLAG

    normalize() lets the host remap codes to custom labels through a __codes__
    mapping in __main__.
    """
    # --- routing errors ---
    UNKNOWN_COMMAND             = 11101
    UNKNOWN_SUBCOMMAND          = 11102
    MISSING_COMMAND             = 11103

    # --- flag errors ---
    UNKNOWN_FLAG                = 11112
    MISSING_VALUE               = 11117

    # --- positional errors ---
    NOT_ENOUGH_POSITIONALS      = 11119
    MISSING_POSITIONAL          = 11125

    # --- conversion errors ---
    CONVERSION                  = 11131
    OUT_OF_RANGE                = 11132

    # --- warnings ---
    DUPLICATED_FLAG             = 12115

    def normalize(self):
        """
        return a host-normalized string for this code (numeric value by default).
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _prog(options):
    main = __import__("__main__")
    return getattr(main, "__prog__", options.get("prog") or os.path.basename(sys.argv[0]) or "declargs")


def _render(fault, palette, kind):
    """
    Shared rich rendering for errors and warnings.

    palette holds the default styles for "prog-name", "code", "{kind}-title",
    "{kind}-message", "hint-arrow", "hint" and "cause"; __main__.__styles__
    overrides any of them.
    """
    styles = defaultdict(str, palette | getattr(__import__("__main__"), "__styles__", {}))
    colorful = fault.options.get("colorful", True)
    fancy = fault.options.get("fancy", False)

    def styler(style):
        return styles[style] if colorful else ""

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), style)

    code = fault.options.get("code")
    header = Text.assemble(
        "[ ",
        text(_prog(fault.options), styler("prog-name")),
        " — ",
        text(code.normalize() if isinstance(code, FaultCode) else "?", styler("code")),
        " | ",
        text(str(fault.options.get("title", kind)).title(), styler(f"{kind}-title")),
        " ]"
    )
    body = [text(fault.message, styler(f"{kind}-message"))]
    if hint := fault.options.get("hint"):
        body.append(Text.assemble(text(" → ", styler("hint-arrow")), text(hint, styler("hint"))))

    if fault.options.get("verbose", False):
        cause = fault.__cause__ or fault.options.get("exception")
        depth = 1
        while cause is not None:
            body.append(Text.assemble(
                "  " * depth,
                text("caused by ", styler("hint-arrow")),
                text(f"{type(cause).__name__}: {cause}", styler("cause")),
            ))
            cause = cause.__cause__
            depth += 1

    if fancy:
        width = console.width - 4
        try:
            width = int(width * fault.options["ratio"])
        except KeyError:
            width = None
        return Panel(Group(*body), title=header, title_align="left", width=width)

    return Group(header, *body)


class CommandException(Exception):
    """
    Base class for runtime parse and dispatch errors.

    The options mapping is read-only; use copy.replace(fault, **overrides) to
    derive an enriched copy (the cause chain is carried over).
    """

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code")

    def __str__(self):
        return str(self.message)

    def __rich__(self):
        return _render(self, {
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",
            "error-message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
            "cause": "#8A8A96",
        }, "error")

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            raise self from self.__cause__
        console.print(self)
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        replaced = type(self)(self.message, **{**self.options, **overrides})
        replaced.__cause__ = self.__cause__
        return replaced


class UnknownFlagError(CommandException): ...
class MissingValueError(CommandException): ...
class InvalidPositionalError(CommandException): ...
class MissingPositionalError(InvalidPositionalError): ...
class NotEnoughPositionalsError(InvalidPositionalError): ...
class ConversionError(CommandException): ...
class OutOfRangeError(ConversionError): ...
class UnknownCommandError(CommandException): ...
class UnknownSubcommandError(CommandException): ...
class MissingCommandError(CommandException): ...


class CommandWarning(ABC, Warning):
    """
    Base class for non-fatal parse findings (e.g. a scalar flag given twice).
    """

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code")

    def __str__(self):
        return str(self.message)

    def __rich__(self):
        return _render(self, {
            "prog-name": "bold #E6E6F0",
            "code": "bold #FFB400",
            "warning-title": "bold #FFC2E0",
            "warning-message": "#D6D6DE",
            "hint-arrow": "#B8EFAF dim",
            "hint": "italic #B8EFAF",
            "cause": "#8A8A96",
        }, "warning")

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            return warnings.warn(self, stacklevel=3)
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class DuplicatedFlagWarning(CommandWarning): ...


class SchemaError(ValueError):
    """
    Malformed schema declaration (duplicate names, bad positional ordering,
    unconvertible default, range on a non-port field, ...).

    Raised eagerly while a schema is derived, before any argument vector is seen.
    """


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see base classes).
    - options are merged into the fault via copy.replace before triggering.
    - in shell mode, rendering happens via the stderr console; otherwise
      exceptions are raised and warnings go through warnings.warn.

    typical options
    - prog, shell, fancy, colorful, verbose, plus any context the renderer may
      want to show.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    optional documentation for a fault code, read from a __docs__ mapping in
    __main__ (FaultCode -> str). Returns None when missing.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "CommandException",
    "UnknownFlagError",
    "MissingValueError",
    "InvalidPositionalError",
    "MissingPositionalError",
    "NotEnoughPositionalsError",
    "ConversionError",
    "OutOfRangeError",
    "UnknownCommandError",
    "UnknownSubcommandError",
    "MissingCommandError",
    "CommandWarning",
    "DuplicatedFlagWarning",
    "SchemaError",
    "FaultCode",
    "trigger",
    "getdoc",
)
