"""
declargs utilities (small helpers shared by every layer)

Overview
- UnsetType / Unset
  • Singleton sentinel for "value not provided", distinct from None.
  • Doubles as the absent state of optional flag kinds: a field annotated
    `int | UnsetType` stays Unset until the flag is seen on the command line.

- coalesce(value, default=None)
  • Replace Unset with a concrete default; every other value (None, 0, "", []) is kept.

- rename(callable, name) / @rename("name")
  • Assign stable __name__/__qualname__ to generated callables.

- mirror("attr")
  • Read-only property over a private backing field (self._attr). Containers are
    handed out as immutable views (tuple, frozenset, MappingProxyType) so schema
    objects cannot be mutated through their public surface.

- ordinal(number)
  • Wording helper for fault messages ("third position").

- enable_logging(level)
  • Opt-in rich handler for the package loggers (silent by default).

Quick examples
    >>> coalesce(Unset, "fallback")
    'fallback'
    >>> coalesce(None, "fallback") is None
    True
    >>> ordinal(3)
    'third'
"""
import builtins
import functools
import logging
from collections.abc import Sequence, Mapping, Set
from types import MappingProxyType
from typing import final

from rich.console import Console
from rich.logging import RichHandler


@final
class UnsetType:
    """
    Sentinel type representing a value that was not provided.

    Characteristics
    - Boolean-false: bool(Unset) is False, but it is distinct from None and 0.
    - Printable: repr(Unset) -> "Unset".
    - Non-subclassable and singleton per process.
    - Usable in PEP 604 unions: `int | UnsetType` marks an optional flag kind.
    """

    def __or__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __reduce__(self):
        # Keep the singleton identity across copy/deepcopy/pickle.
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    Resolve the Unset sentinel to a concrete default.

    Returns `object` unless it is Unset, in which case `default` is returned.
    Falsey values like None, 0, "" or [] are preserved as-is.

    Examples
    - coalesce("name", "fallback") -> "name"
    - coalesce(Unset, "fallback")  -> "fallback"
    - coalesce(None, "fallback")   -> None
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set a stable __name__/__qualname__ on a callable, or return a decorator
    that will do so later.

    Forms
    - rename(callable, name) -> callable
    - rename(name) -> decorator

    Raises
    - TypeError: on a non-callable target, a non-string name, a callable whose
      names cannot be updated, or a wrong number of arguments.
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _freeze(object):
    """
    Recursively turn containers into immutable views.

    - Sequence (non-string) -> tuple
    - Mapping -> MappingProxyType over a fresh dict (keys kept, values frozen)
    - Set -> frozenset
    - anything else is returned unchanged
    """
    if isinstance(object, Sequence) and not isinstance(object, str | tuple):
        return tuple(map(_freeze, object))
    elif isinstance(object, tuple):
        return object
    elif isinstance(object, MappingProxyType):
        return object
    elif isinstance(object, Mapping):
        return MappingProxyType(dict(zip(object.keys(), map(_freeze, object.values()))))
    elif isinstance(object, Set) and not isinstance(object, frozenset):
        return frozenset(object)
    return object


def mirror(name, /):
    """
    Define a read-only property that mirrors the private attribute "_{name}".

    Container values come back as immutable views (see _freeze), so callers may
    hold on to them without affecting the owning object.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _freeze(getattr(self, "_" + name))

    return property(getter)


@functools.cache
def ordinal(number, /):
    """
    Human-friendly ordinal label for a 1-based position.

    1..10 are spelled out ("first"..."tenth"); larger numbers use numeric
    suffixes with the usual teens exception (11th, 12th, 13th).
    """
    try:
        return (
            "first", "second", "third", "fourth", "fifth",
            "sixth", "seventh", "eighth", "ninth", "tenth",
        )[number - 1] if number > 0 else f"{number}th"
    except IndexError:
        pass

    if 10 < number % 100 < 20:
        return f"{number}th"

    return f'{number}%s' % {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


Unset = UnsetType()
"""
Sentinel for "not provided".

Also the runtime value of an optional flag kind (`T | UnsetType`) whose flag
never appeared on the command line, so presence can be tested with
`value is not Unset` even when the present value is falsey.
"""


def enable_logging(level=logging.DEBUG, /, *, console=Unset):
    """
    Route the package loggers through a rich handler on stderr.

    The package only installs a NullHandler; applications that want the parse
    and dispatch trace opt in here. Returns the installed handler.
    """
    handler = RichHandler(
        console=coalesce(console, Console(stderr=True)),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    logger = logging.getLogger(__name__.rpartition(".")[0] or __name__)
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "ordinal",
    "enable_logging",

    # Types
    "UnsetType",

    # Constants
    "Unset",
)
