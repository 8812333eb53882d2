r"""
declargs schema declarations and introspection.

Overview
- Field helpers
  • flag(name=Unset, /, *, short, default, help, range, split): mark a dataclass
    field as a flag (fields without any helper are flags too).
  • positional(tag, /, *, help): mark a dataclass field as a positional argument.
    Tags: 0 / "0" (required), "1?" (optional), "1*" (zero-or-more), "1+" (one-or-more).

- Specs
  • FlagSpec: long name, short alias, kind, raw default, help, port range, field.
  • PositionalSpec: index, arity, kind, help, field.
  • Schema: the flags and positionals of one configuration structure, indexed by
    long name and short alias. Immutable once built.

- introspect(cls): derive the Schema of a dataclass once (cached). Repeated calls
  return the very same object, so schemas can be shared across parse calls.

Example
    >>> @dataclass
    ... class Options:
    ...     verbose: bool = flag(short="v", help="chatty output")
    ...     output: str = flag(default="out.txt")
    ...     http: Port = flag(range="1-65535")
    ...     service: str = positional(0)
    ...     args: list[str] = positional("1*")
    >>> introspect(Options).lookup("output").default
    'out.txt'

Validation (SchemaError, raised at construction time)
- long names match r"[^\W\d_](-?[^\W_]+)*" and are unique; short aliases are a
  single non-dash character and unique; "help", "help-llm" and "h" are reserved.
- positional indices are contiguous from 0, at most one variadic entry and only
  last, and a required entry never follows an optional or variadic one.
- variadic positionals are list[T]; other positionals are not lists.
- range is only valid on Port (or list[Port] / Port | UnsetType) and must be "lo-hi".
- defaults must coerce exactly like user input would; optional kinds take none.
"""
import dataclasses
import functools
import logging
import operator
import re
import types
import typing
from enum import StrEnum

from .faults import *
from .kinds import *
from .utils import *

logger = logging.getLogger(__name__)

RESERVED_NAMES = frozenset(("help", "help-llm"))
RESERVED_SHORTS = frozenset(("h",))

_METADATA = "declargs"


class Arity(StrEnum):
    """Cardinality of a positional entry."""
    REQUIRED = ""
    OPTIONAL = "?"
    ZERO_OR_MORE = "*"
    ONE_OR_MORE = "+"

    @property
    def variadic(self):
        return self in (Arity.ZERO_OR_MORE, Arity.ONE_OR_MORE)


class SpecType(type):
    """
    Metaclass for schema objects.

    - __typename__ is derived from the class name (camel-case split with hyphens)
      and used in validation messages.
    - Every name in __introspectable__ becomes a read-only property over "_{name}".
    - Stable __repr__/__rich_repr__ plus equality and hashing over the
      introspectable values, so two derivations of the same structure compare equal.
    """
    __introspectable__ = ()

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in type(self).__introspectable__:
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        @rename("__eq__")
        def __eq__(self, other):
            if type(self) is not type(other):
                return NotImplemented
            return all(getattr(self, name) == getattr(other, name) for name in type(self).__introspectable__)
        self.__eq__ = __eq__

        @rename("__hash__")
        def __hash__(self):
            return hash(tuple(getattr(self, "_" + name) for name in type(self).__introspectable__))
        self.__hash__ = __hash__

        return self


@dataclasses.dataclass(frozen=True)
class _FlagTag:
    name: str | UnsetType = Unset
    short: str | UnsetType = Unset
    default: str | UnsetType = Unset
    help: str | UnsetType = Unset
    range: str | UnsetType = Unset
    split: bool = False


@dataclasses.dataclass(frozen=True)
class _PositionalTag:
    index: int
    arity: Arity
    help: str | UnsetType = Unset


def flag(name=Unset, /, *, short=Unset, default=Unset, help=Unset, range=Unset, split=False):
    """
    Declare a dataclass field as a flag.

    Parameters
    - name: long flag name without dashes; defaults to the field name lowercased
      with underscores turned into hyphens.
    - short: single-character alias ("v" for -v).
    - default: raw string default, coerced like user input when the flag is absent.
      Slice defaults are comma separated.
    - help: one-line description used by help renderers.
    - range: "lo-hi" closed interval, Port kinds only.
    - split: for slice kinds, split every occurrence on commas.
    """
    return dataclasses.field(kw_only=True, metadata={
        _METADATA: _FlagTag(name, short, default, help, range, split)
    })


def positional(tag, /, *, help=Unset):
    """
    Declare a dataclass field as a positional argument.

    The tag is the zero-based index optionally followed by an arity marker:
    0 or "0" (required), "1?" (optional), "1*" (zero-or-more), "1+" (one-or-more).
    """
    if isinstance(tag, bool) or not isinstance(tag, int | str):
        raise TypeError("positional() tag must be an integer or a string")
    if isinstance(tag, int):
        index, arity = tag, Arity.REQUIRED
    elif match := re.fullmatch(r"([0-9]+)([?*+]?)", tag.strip()):
        index, arity = int(match[1]), Arity(match[2])
    else:
        raise SchemaError(f"positional tag {tag!r} must look like '0', '1?', '1*' or '1+'")
    if index < 0:
        raise SchemaError(f"positional index {index} cannot be negative")
    return dataclasses.field(kw_only=True, metadata={
        _METADATA: _PositionalTag(index, arity, help)
    })


def _sanitize_kind(cls, metadata, /):
    """
    Resolve the 'kind' metadata (a Kind or a field annotation) into a Kind.
    """
    if isinstance(kind := metadata["kind"], Kind):
        return
    try:
        metadata["kind"] = kindof(kind)
    except TypeError as exception:
        raise SchemaError(f"{cls.__typename__} {metadata["label"]} has an unsupported type: {exception}") from None


def _sanitize_help(cls, metadata, /):
    if not isinstance(help := metadata["help"], str | UnsetType):
        raise TypeError(f"{cls.__typename__} 'help' must be a string")
    metadata["help"] = help.strip() if isinstance(help, str) else ""


def _sanitize_flag_metadata(cls, metadata, /):
    """
    Validate names, short alias, range, split and default of a flag.
    """
    if not isinstance(name := metadata["name"], str):
        raise TypeError(f"{cls.__typename__} name must be a string")
    elif not re.fullmatch(r"[^\W\d_](-?[^\W_]+)*", name):
        raise SchemaError(f"{cls.__typename__} name {name!r} must be a valid long flag name")
    elif name in RESERVED_NAMES:
        raise SchemaError(f"{cls.__typename__} name {name!r} is reserved for help")

    if not isinstance(short := metadata["short"], str | UnsetType):
        raise TypeError(f"{cls.__typename__} '--{name}' short alias must be a string")
    elif isinstance(short, str) and (len(short) != 1 or short == "-" or short == "=" or short.isspace()):
        raise SchemaError(f"{cls.__typename__} '--{name}' short alias must be exactly one character")
    elif short in RESERVED_SHORTS:
        raise SchemaError(f"{cls.__typename__} '--{name}' short alias {short!r} is reserved for help")

    kind = metadata["kind"]

    if metadata["range"] is not Unset:
        if kind.scalar.name != "port":
            raise SchemaError(f"{cls.__typename__} '--{name}' declares a range but is not a port")
        try:
            metadata["range"] = parse_range(metadata["range"])
        except ValueError as exception:
            raise SchemaError(f"{cls.__typename__} '--{name}' {exception}") from None

    if metadata["split"] and not kind.slice:
        raise SchemaError(f"{cls.__typename__} '--{name}' can only split on commas when it is a list")

    if not isinstance(default := metadata["default"], str | UnsetType):
        raise TypeError(f"{cls.__typename__} '--{name}' default must be a raw string")
    elif isinstance(default, str) and kind.optional:
        raise SchemaError(f"{cls.__typename__} '--{name}' is optional and cannot declare a default")


class FlagSpec(metaclass=SpecType):
    """
    A named flag of a schema.

    Properties
    - name: long name (used as "--name"), short: single character or Unset,
      kind: Kind, default: raw default string or Unset, help: str,
      range: (lo, hi) or Unset, field: attribute name on the target, split: bool.
    """
    __introspectable__ = (
        "name",
        "short",
        "kind",
        "default",
        "help",
        "range",
        "field",
        "split",
    )

    def __init__(self, name, /, kind, *, short=Unset, default=Unset, help=Unset, range=Unset, field=Unset, split=False):
        metadata = {
            "label": f"'--{name}'",
            "name": name,
            "kind": kind,
            "short": short,
            "default": default,
            "help": help,
            "range": range,
            "split": bool(split),
        }
        _sanitize_kind(type(self), metadata)
        _sanitize_help(type(self), metadata)
        _sanitize_flag_metadata(type(self), metadata)

        self._name = metadata["name"]
        self._short = metadata["short"]
        self._kind = metadata["kind"]
        self._default = metadata["default"]
        self._help = metadata["help"]
        self._range = metadata["range"]
        self._split = metadata["split"]
        self._field = coalesce(field, self._name.replace("-", "_"))

        # Pre-coerce the default so absent flags never convert at parse time.
        if self._default is Unset:
            self._initial = self._kind.zero()
        else:
            try:
                if self._kind.slice:
                    self._initial = [self.convert(part) for part in self._default.split(",")] if self._default else []
                else:
                    self._initial = self.convert(self._default)
            except ConversionError as exception:
                raise SchemaError(
                    f"{type(self).__typename__} '--{self._name}' default {self._default!r} is not a valid {self._kind.name}"
                ) from exception.__cause__

    @property
    def boolean(self):
        return self._kind.boolean

    @property
    def label(self):
        return "--" + self._name

    def initial(self):
        """
        The value of the field when the flag is absent (a fresh list for slices).
        """
        return list(self._initial) if self._kind.slice else self._initial

    def convert(self, raw, /):
        """
        Coerce one raw token (one element for slices).

        Raises
        - ConversionError: the token does not parse as the flag kind.
        - OutOfRangeError: the value overflows the kind or the declared range.
        """
        return _convert(self, raw, f"flag {self.label!r}", flag=self._name)


class PositionalSpec(metaclass=SpecType):
    """
    A positional argument of a schema.

    Properties
    - index: zero-based position, arity: Arity, kind: Kind, help: str,
      field: attribute name on the target, name: display name.
    """
    __introspectable__ = (
        "index",
        "arity",
        "kind",
        "help",
        "field",
        "name",
    )

    range = Unset

    def __init__(self, index, /, kind, *, arity=Arity.REQUIRED, help=Unset, field=Unset, name=Unset):
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise SchemaError(f"{type(self).__typename__} index must be a non-negative integer")
        metadata = {
            "label": f"#{index}",
            "kind": kind,
            "help": help,
        }
        _sanitize_kind(type(self), metadata)
        _sanitize_help(type(self), metadata)

        self._index = index
        self._arity = Arity(arity)
        self._kind = metadata["kind"]
        self._help = metadata["help"]
        self._field = coalesce(field, f"arg{index}")
        self._name = coalesce(name, self._field.strip("_").replace("_", "-"))

        if self._arity.variadic and not self._kind.slice:
            raise SchemaError(f"{type(self).__typename__} {self._name!r} is variadic and must be a list")
        if not self._arity.variadic and self._kind.slice:
            raise SchemaError(f"{type(self).__typename__} {self._name!r} is a list and must be variadic ('*' or '+')")

    @property
    def label(self):
        return f"<{self._name}>"

    def initial(self):
        return self._kind.zero()

    def convert(self, raw, /):
        return _convert(self, raw, f"positional {self.label!r}", positional=self._name, index=self._index)


def _convert(spec, raw, label, /, **context):
    kind = spec.kind.scalar
    try:
        value = kind(raw)
    except OverflowError as exception:
        raise OutOfRangeError(
            f"value {raw!r} for {label} is out of range for {kind.name}",
            title="value out of range",
            code=FaultCode.OUT_OF_RANGE,
            hint=f"pass a {kind.name} within its bounds",
            field=spec.field,
            raw=raw,
            kind=kind.name,
            exception=exception,
            docs=getdoc(FaultCode.OUT_OF_RANGE),
            **context,
        ) from exception
    except ValueError as exception:
        raise ConversionError(
            f"invalid value {raw!r} for {label}: expected {kind.name}",
            title="invalid value",
            code=FaultCode.CONVERSION,
            hint=f"pass a valid {kind.name} ({exception})",
            field=spec.field,
            raw=raw,
            kind=kind.name,
            exception=exception,
            docs=getdoc(FaultCode.CONVERSION),
            **context,
        ) from exception

    if spec.range is Unset:
        return value
    low, high = spec.range
    if not low <= value <= high:
        exception = ValueError(f"{value} not in [{low}, {high}]")
        raise OutOfRangeError(
            f"value {raw!r} for {label} is outside {low}-{high}",
            title="value out of range",
            code=FaultCode.OUT_OF_RANGE,
            hint=f"pass a port between {low} and {high}",
            field=spec.field,
            raw=raw,
            kind=kind.name,
            exception=exception,
            docs=getdoc(FaultCode.OUT_OF_RANGE),
            **context,
        ) from exception
    return value


def _sanitize_positionals(cls, positionals, /):
    """
    Enforce contiguous indices, a single trailing variadic and no required
    entry after an optional or variadic one.
    """
    positionals = sorted(positionals, key=lambda x: x.index)
    if [positional.index for positional in positionals] != list(range(len(positionals))):
        raise SchemaError(f"{cls.__typename__} positional indices must be contiguous from 0, got {[
            positional.index for positional in positionals
        ]}")
    relaxed = None
    for positional in positionals:
        if relaxed and relaxed.arity.variadic:
            raise SchemaError(f"{cls.__typename__} variadic positional {relaxed.name!r} must be the last one")
        if relaxed and positional.arity is Arity.REQUIRED:
            raise SchemaError(
                f"{cls.__typename__} required positional {positional.name!r} cannot follow {relaxed.arity.name.lower()} {relaxed.name!r}"
            )
        if positional.arity is not Arity.REQUIRED:
            relaxed = positional
    return tuple(positionals)


class Schema(metaclass=SpecType):
    """
    Flags and positionals of one configuration structure.

    Built either by introspect(cls) or directly from FlagSpec/PositionalSpec
    objects (target may then be Unset, in which case instantiate() produces a
    SimpleNamespace).
    """
    __introspectable__ = (
        "target",
        "flags",
        "positionals",
    )

    def __init__(self, flags=(), positionals=(), /, *, target=Unset):
        flags = tuple(flags)
        for spec in flags:
            if not isinstance(spec, FlagSpec):
                raise TypeError(f"{type(self).__typename__} flags must be flag-spec objects")
        for spec in positionals:
            if not isinstance(spec, PositionalSpec):
                raise TypeError(f"{type(self).__typename__} positionals must be positional-spec objects")

        longs, shorts, fields = {}, {}, set()
        for spec in flags:
            if longs.setdefault(spec.name, spec) is not spec:
                raise SchemaError(f"{type(self).__typename__} flag name '--{spec.name}' is declared twice")
            if spec.short is not Unset and shorts.setdefault(spec.short, spec) is not spec:
                raise SchemaError(f"{type(self).__typename__} short alias '-{spec.short}' is declared twice")

        positionals = _sanitize_positionals(type(self), positionals)
        for spec in (*flags, *positionals):
            if spec.field in fields:
                raise SchemaError(f"{type(self).__typename__} field {spec.field!r} is bound twice")
            fields.add(spec.field)

        self._target = target
        self._flags = flags
        self._positionals = positionals
        self._longs = types.MappingProxyType(longs)
        self._shorts = types.MappingProxyType(shorts)

    @property
    def variadic(self):
        return bool(self._positionals) and self._positionals[-1].arity.variadic

    def lookup(self, name, /):
        """Flag spec for a long name, or None."""
        return self._longs.get(name)

    def lookup_short(self, short, /):
        """Flag spec for a short alias, or None."""
        return self._shorts.get(short)

    def instantiate(self, values, /):
        """
        Build the target structure from a field -> value mapping.
        """
        if self._target is Unset:
            return types.SimpleNamespace(**values)
        return self._target(**values)


def _default_of(field, kind, /):
    """
    Raw default derived from a plain dataclass default, so `level: int = 3`
    behaves like flag(default="3").
    """
    if field.default is not dataclasses.MISSING:
        value = field.default
    elif field.default_factory is not dataclasses.MISSING:
        value = field.default_factory()
    else:
        return Unset
    if value is Unset or kind.optional:
        return Unset
    if kind.slice and not value:
        return Unset
    return kind.format(value)


@functools.cache
def introspect(cls, /):
    """
    Derive (once) the Schema of a dataclass.

    Fields carrying positional() metadata become positionals; every other init
    field becomes a flag, named by flag(name) or after the field itself.

    Raises
    - SchemaError: the class is not a dataclass or its declarations are invalid.
    """
    if not isinstance(cls, type) or not dataclasses.is_dataclass(cls):
        raise SchemaError(f"introspect() argument must be a dataclass type, not {cls!r}")

    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError) as exception:
        raise SchemaError(f"cannot resolve annotations of {cls.__qualname__}: {exception}") from exception

    flags = []
    positionals = []
    for field in dataclasses.fields(cls):
        if not field.init:
            continue
        tag = field.metadata.get(_METADATA, _FlagTag())
        annotation = hints[field.name]
        if isinstance(tag, _PositionalTag):
            positionals.append(PositionalSpec(
                tag.index,
                annotation,
                arity=tag.arity,
                help=tag.help,
                field=field.name,
            ))
            continue

        name = coalesce(tag.name, re.sub(r"_+", "-", field.name.lower().strip("_")))
        default = tag.default
        if default is Unset:
            try:
                default = _default_of(field, kindof(annotation))
            except TypeError:
                pass  # unsupported annotation, reported by FlagSpec below
        flags.append(FlagSpec(
            name,
            annotation,
            short=tag.short,
            default=default,
            help=tag.help,
            range=tag.range,
            field=field.name,
            split=tag.split,
        ))

    schema = Schema(flags, positionals, target=cls)
    logger.debug("derived schema for %s: %d flags, %d positionals", cls.__qualname__, len(flags), len(positionals))
    return schema


__all__ = (
    # Types
    "Arity",
    "FlagSpec",
    "PositionalSpec",
    "Schema",

    # Functions
    "flag",
    "positional",
    "introspect",

    # Constants
    "RESERVED_NAMES",
    "RESERVED_SHORTS",
)

# The metaclass is an implementation detail of the spec objects.
del SpecType
