"""
declargs binder: argument vector + schema(s) -> outcome.

Overview
- bind(argv, options, /, *, globals, arguments, route, split, prog)
  Returns exactly one of
  • Parsed(result)          the vector matched; result is a ParseResult
  • HelpRequested(...)      help, -h, --help or --help-llm was seen
  • Failed(fault)           a CommandException describing the first problem

- parse_known(argv, specs, /, *, split)
  Extract only the declared flags and hand every other token back, untouched
  and in order, as the remainder.

- locate(argv, globals, /, *, options)
  Positions of positional tokens, skipping values of known flags. Used to find
  the subcommand path before the local schema is known.

Ownership (dual-schema mode, globals given)
- The first len(route) positional tokens are the subcommand path.
- Until the path is complete, a flag resolves against the global schema first;
  afterwards against the local schema first, so a local flag shadows a global
  one of the same name. A flag found in neither is an UnknownFlagError.

Flags
- booleans take "true", or their inline value ("--dry-run=false", "-v=false"),
  never the next token.
- other kinds take the inline value or else the next token verbatim (the "--"
  marker is never a value).
- short clusters: "-vq" sets two booleans; a value-taking short consumes the rest
  of its token ("-ofile", "-o=file") or the next one ("-o file").
- scalars given twice keep the last value and warn (DuplicatedFlagWarning);
  slices accumulate, splitting on commas when asked to.

Positionals
- filled in index order; missing required -> MissingPositionalError, absent
  optional -> zero value, "*" takes all that remain, "+" needs at least one
  (NotEnoughPositionalsError). Extra tokens land in result.rest and tokens after
  "--" in result.passthrough.
"""
import dataclasses
import difflib
import logging
import warnings
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from .faults import *
from .scanner import *
from .schema import *
from .utils import *

logger = logging.getLogger(__name__)


class HelpVariant(Enum):
    GENERAL = "general"
    SUBCOMMAND = "subcommand"
    LLM = "llm"


@dataclasses.dataclass(frozen=True)
class ParseResult:
    """
    Typed outcome of a successful bind.

    - options: instance of the local (or only) structure
    - globals: instance of the global structure, Unset in single-schema mode
    - arguments: instance of the separate positional structure, when one was given
    - route: subcommand path consumed from the vector
    - rest: positional tokens beyond every declared positional
    - passthrough: tokens after the first "--"
    """
    options: object
    globals: object = Unset
    arguments: object = Unset
    route: tuple[str, ...] = ()
    rest: tuple[str, ...] = ()
    passthrough: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class Parsed:
    result: ParseResult


@dataclasses.dataclass(frozen=True)
class HelpRequested:
    """Help was asked for; command is the program name, subcommand the leaf when known."""
    variant: HelpVariant
    command: str | UnsetType = Unset
    subcommand: str | UnsetType = Unset
    route: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class Failed:
    fault: CommandException


type Outcome = Parsed | HelpRequested | Failed


@dataclasses.dataclass(frozen=True)
class KnownFlags:
    """Flags extracted by parse_known and every token left for someone else."""
    values: Mapping
    remainder: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class Known:
    annotation: object
    short: str | UnsetType = Unset
    split: bool = False
    range: str | UnsetType = Unset


def known(annotation, /, *, short=Unset, split=False, range=Unset):
    """
    Describe one flag for parse_known() beyond its bare type.
    """
    return Known(annotation, short, split, range)


def _schema(object, /):
    if isinstance(object, Schema):
        return object
    return introspect(object)


class _Binding:
    """
    Flag consumption shared by bind() and parse_known().

    scopes() yields (schema, store) pairs in resolution order; stores map a
    flag's field to its coerced value. In strict mode structural problems raise,
    otherwise the token is reported as not consumed (0).
    """

    def __init__(self, tokens, scopes, /, *, split=False, strict=True, context=""):
        self.tokens = tokens
        self.scopes = scopes
        self.split = split
        self.strict = strict
        self.context = context

    def resolve(self, name, /, *, short=False):
        for schema, store in self.scopes():
            if (spec := schema.lookup_short(name) if short else schema.lookup(name)) is not None:
                return spec, store
        return None, None

    def consume(self, position, /):
        """
        Consume the flag token at position; returns how many tokens were used.
        """
        token = self.tokens[position]
        if token.kind is TokenKind.LONG:
            return self._long(token, position)
        return self._short(token, position)

    def _next(self, position, /):
        if position + 1 < len(self.tokens) and self.tokens[position + 1].kind is not TokenKind.MARKER:
            return self.tokens[position + 1].text
        return Unset

    def _long(self, token, position, /):
        spec, store = self.resolve(token.name)
        if spec is None:
            if self.strict:
                raise self._unknown(token.name, token, "--")
            return 0
        if spec.boolean:
            self.assign(spec, store, coalesce(token.value, "true"), token)
            return 1
        if token.value is not Unset:
            self.assign(spec, store, token.value, token)
            return 1
        if (raw := self._next(position)) is Unset:
            if self.strict:
                raise self._missing(spec, token)
            return 0
        self.assign(spec, store, raw, token)
        return 2

    def _short(self, token, position, /):
        cluster = token.text[1:]
        plan = []
        consumed = 1
        # Resolve the whole cluster before assigning anything, so a cluster with
        # an unknown character is left intact in non-strict mode.
        for offset, character in enumerate(cluster):
            spec, store = self.resolve(character, short=True)
            if spec is None:
                if self.strict:
                    raise self._unknown(character, token, "-")
                return 0
            rest = cluster[offset + 1:]
            if spec.boolean:
                if rest.startswith("="):
                    plan.append((spec, store, rest[1:]))
                    break
                plan.append((spec, store, "true"))
                continue
            if rest:
                plan.append((spec, store, rest.removeprefix("=")))
            elif (raw := self._next(position)) is not Unset:
                plan.append((spec, store, raw))
                consumed = 2
            elif self.strict:
                raise self._missing(spec, token)
            else:
                return 0
            break

        for spec, store, raw in plan:
            self.assign(spec, store, raw, token)
        return consumed

    def assign(self, spec, store, raw, token, /):
        if spec.kind.slice:
            parts = raw.split(",") if self.split or spec.split else [raw]
            store.setdefault(spec.field, []).extend(map(spec.convert, parts))
            return
        if spec.field in store and self.strict:
            warnings.warn(DuplicatedFlagWarning(
                "flag %r given more than once, keeping the last value %r" % (spec.label, raw),
                title="duplicated flag",
                code=FaultCode.DUPLICATED_FLAG,
                hint="pass %r only once" % spec.label,
                flag=spec.name,
                token=token.text,
                docs=getdoc(FaultCode.DUPLICATED_FLAG),
            ), stacklevel=2)
        store[spec.field] = spec.convert(raw)

    def _unknown(self, name, token, dashes, /):
        candidates = [
            "--" + spec.name if dashes == "--" else "-" + spec.short
            for schema, _ in self.scopes()
            for spec in schema.flags
            if dashes == "--" or spec.short is not Unset
        ]
        suggestions = difflib.get_close_matches(dashes + name, candidates, 5)
        try:
            hint = "did you mean %r? you can also run '%s --help' to see all flags" % (suggestions[0], self.context)
        except IndexError:
            hint = "try '%s --help' to see all available flags" % self.context
        return UnknownFlagError(
            "unknown flag %r at %s position" % (dashes + name, ordinal(token.position + 1)),
            title="unknown flag",
            code=FaultCode.UNKNOWN_FLAG,
            hint=hint,
            flag=name,
            token=token.text,
            position=token.position,
            suggestions=tuple(suggestions),
            docs=getdoc(FaultCode.UNKNOWN_FLAG),
        )

    def _missing(self, spec, token, /):
        return MissingValueError(
            "flag %r at %s position requires a value" % (spec.label, ordinal(token.position + 1)),
            title="missing value",
            code=FaultCode.MISSING_VALUE,
            hint="pass it as %s=<%s> or %s <%s>" % (spec.label, spec.kind.name, spec.label, spec.kind.name),
            flag=spec.name,
            token=token.text,
            kind=spec.kind.name,
            position=token.position,
            docs=getdoc(FaultCode.MISSING_VALUE),
        )


def _skips(token, /, *schemas):
    """
    Whether a flag token takes the following token as its value. Each flag is
    looked up in `schemas` in order; unknown flags are assumed to be booleans.
    """
    def lookup(name, short=False):
        for schema in schemas:
            if (spec := schema.lookup_short(name) if short else schema.lookup(name)) is not None:
                return spec
        return None

    if token.kind is TokenKind.LONG:
        spec = lookup(token.name)
        return spec is not None and not spec.boolean and token.value is Unset
    cluster = token.text[1:]
    for offset, character in enumerate(cluster):
        if (spec := lookup(character, True)) is None or spec.boolean:
            if spec is not None and cluster[offset + 1:].startswith("="):
                return False
            continue
        return not cluster[offset + 1:]
    return False


def locate(argv, globals=Unset, /, *, options=Unset):
    """
    Positions (in argv) of the positional tokens before "--", skipping the
    values taken by flags of the global structure, then of the local one when
    `options` is given. Unknown flags are assumed to be booleans.
    """
    schemas = tuple(_schema(x) for x in (globals, options) if x is not Unset)
    found = []
    skip = False
    for token in scan(argv):
        if skip:
            skip = False
            continue
        match token.kind:
            case TokenKind.MARKER:
                break
            case TokenKind.POSITIONAL:
                found.append(token.position)
            case TokenKind.LONG | TokenKind.SHORT:
                skip = _skips(token, *schemas)
    return tuple(found)


def intercept(argv, /, *, route=(), globals=Unset, options=Unset, prog=Unset):
    """
    Detect a help request in an argument vector, or return None.

    - "help" as the first token: general help
    - "-h" / "--help" before "--": general help, or subcommand help when the
      token follows the complete route
    - "--help-llm" before "--": LLM-oriented help (with the subcommand when it
      follows the complete route)
    """
    argv = tuple(argv)
    tokens = scan(argv)
    route = tuple(route)
    if tokens and tokens[0].kind is TokenKind.POSITIONAL and tokens[0].text == "help":
        return HelpRequested(HelpVariant.GENERAL, prog)

    boundary = len(tokens)
    if route and len(located := locate(argv, globals, options=options)) >= len(route):
        boundary = located[len(route) - 1]

    for token in tokens:
        if token.kind is TokenKind.MARKER:
            break
        if token.text == "-h" or (token.kind is TokenKind.LONG and token.name in ("help", "help-llm")):
            after = bool(route) and token.position > boundary
            if token.kind is TokenKind.LONG and token.name == "help-llm":
                variant = HelpVariant.LLM
            else:
                variant = HelpVariant.SUBCOMMAND if after else HelpVariant.GENERAL
            return HelpRequested(
                variant,
                prog,
                route[-1] if after else Unset,
                tuple(route) if after else (),
            )
    return None


def _positionals(schema, tokens, /):
    """
    Assign positional tokens to the schema's entries; returns (values, rest).
    """
    values = {}
    queue = list(tokens)
    cursor = 0
    for spec in schema.positionals:
        match spec.arity:
            case Arity.REQUIRED:
                if cursor >= len(queue):
                    raise MissingPositionalError(
                        "missing required positional %s (%s argument)" % (spec.label, ordinal(spec.index + 1)),
                        title="missing positional",
                        code=FaultCode.MISSING_POSITIONAL,
                        hint="pass a value for %s" % spec.label,
                        positional=spec.name,
                        index=spec.index,
                        docs=getdoc(FaultCode.MISSING_POSITIONAL),
                    )
                values[spec.field] = spec.convert(queue[cursor])
                cursor += 1
            case Arity.OPTIONAL:
                if cursor < len(queue):
                    values[spec.field] = spec.convert(queue[cursor])
                    cursor += 1
                else:
                    values[spec.field] = spec.initial()
            case Arity.ZERO_OR_MORE | Arity.ONE_OR_MORE:
                if spec.arity is Arity.ONE_OR_MORE and cursor >= len(queue):
                    raise NotEnoughPositionalsError(
                        "positional %s needs at least one value" % spec.label,
                        title="not enough positionals",
                        code=FaultCode.NOT_ENOUGH_POSITIONALS,
                        hint="pass one or more values for %s" % spec.label,
                        positional=spec.name,
                        index=spec.index,
                        docs=getdoc(FaultCode.NOT_ENOUGH_POSITIONALS),
                    )
                values[spec.field] = [spec.convert(raw) for raw in queue[cursor:]]
                cursor = len(queue)
    return values, tuple(queue[cursor:])


def _materialize(schema, store, /, positionals=None):
    values = {spec.field: store[spec.field] if spec.field in store else spec.initial() for spec in schema.flags}
    values |= positionals or {}
    return schema.instantiate(values)


def bind(argv, options, /, *, globals=Unset, arguments=Unset, route=(), split=False, prog=Unset):
    """
    Bind an argument vector against one schema (single mode) or a global and a
    local schema (dual mode).

    Parameters
    - argv: iterable of str (read once, never mutated)
    - options: dataclass or Schema of the local (or only) structure
    - globals: dataclass or Schema of the global structure; enables dual mode
    - arguments: dataclass or Schema holding the positionals separately
    - route: subcommand path expected as the leading positional tokens
    - split: split every slice flag value on commas for this call
    - prog: program name reported by HelpRequested

    Returns
    - Parsed | HelpRequested | Failed

    Raises
    - SchemaError: a structure cannot be introspected or the structures do not
      fit together (e.g. positionals declared both in options and arguments).
    """
    local = _schema(options)
    global_ = _schema(globals) if globals is not Unset else Unset
    separate = _schema(arguments) if arguments is not Unset else Unset
    route = tuple(route)

    if separate is not Unset and separate.flags:
        raise SchemaError("arguments structure can only declare positionals")
    if separate is not Unset and local.positionals:
        raise SchemaError("positionals cannot be declared both in options and in arguments")
    if global_ is not Unset and global_.positionals:
        raise SchemaError("global structure cannot declare positionals")

    argv = tuple(argv)
    tokens = scan(argv)
    if (help := intercept(argv, route=route, globals=globals, options=local, prog=prog)) is not None:
        logger.debug("help requested: %s", help.variant.value)
        return help

    local_store, global_store = {}, {}
    routed = []
    positionals = []
    passthrough = ()

    def scopes():
        if global_ is Unset:
            return ((local, local_store),)
        if len(routed) < len(route):
            return (global_, global_store), (local, local_store)
        return (local, local_store), (global_, global_store)

    binding = _Binding(tokens, scopes, split=split, context=" ".join((coalesce(prog, ""), *route)).strip())

    try:
        position = 0
        while position < len(tokens):
            token = tokens[position]
            match token.kind:
                case TokenKind.MARKER:
                    passthrough = tuple(token.text for token in tokens[position + 1:])
                    break
                case TokenKind.POSITIONAL if len(routed) < len(route):
                    if token.text != (expected := route[len(routed)]):
                        raise UnknownSubcommandError(
                            "expected subcommand %r at %s position, got %r" % (expected, ordinal(position + 1), token.text),
                            title="unknown subcommand",
                            code=FaultCode.UNKNOWN_SUBCOMMAND,
                            hint="run '%s --help' to see available subcommands" % binding.context,
                            token=token.text,
                            expected=expected,
                            docs=getdoc(FaultCode.UNKNOWN_SUBCOMMAND),
                        )
                    routed.append(token.text)
                case TokenKind.POSITIONAL:
                    positionals.append(token.text)
                case TokenKind.LONG | TokenKind.SHORT:
                    position += binding.consume(position)
                    continue
            position += 1

        if len(routed) < len(route):
            raise UnknownSubcommandError(
                "missing subcommand %r" % route[len(routed)],
                title="missing subcommand",
                code=FaultCode.UNKNOWN_SUBCOMMAND,
                hint="run '%s --help' to see available subcommands" % binding.context,
                expected=route[len(routed)],
                docs=getdoc(FaultCode.UNKNOWN_SUBCOMMAND),
            )

        values, rest = _positionals(coalesce(separate, local), positionals)
        result = ParseResult(
            options=_materialize(local, local_store, values if separate is Unset else None),
            globals=_materialize(global_, global_store) if global_ is not Unset else Unset,
            arguments=separate.instantiate(values) if separate is not Unset else Unset,
            route=tuple(routed),
            rest=rest,
            passthrough=passthrough,
        )
    except CommandException as fault:
        logger.debug("binding failed: %s", fault)
        return Failed(fault)

    logger.debug("bound %d tokens (%d rest, %d passthrough)", len(tokens), len(result.rest), len(result.passthrough))
    return Parsed(result)


def _known_schema(specs, /):
    if isinstance(specs, Schema):
        return specs
    if not isinstance(specs, Mapping):
        raise TypeError("parse_known() specs must be a mapping or a schema")
    flags = []
    for name, spec in specs.items():
        if not isinstance(spec, Known):
            spec = Known(spec)
        flags.append(FlagSpec(name, spec.annotation, short=spec.short, split=spec.split, range=spec.range, field=name))
    return Schema(flags)


def parse_known(argv, specs, /, *, split=False):
    """
    Extract a declared subset of flags and leave everything else alone.

    Parameters
    - argv: sequence of str
    - specs: mapping of flag name -> annotation or known(...), or a Schema
    - split: split every slice value on commas for this call

    Returns
    - KnownFlags(values, remainder): values holds only the flags that were seen
      (keyed by declared name); remainder keeps every other token in order,
      including unknown flags, their values, clusters with any unknown character,
      a declared flag lacking its value, and everything from "--" on.

    Raises
    - ConversionError: a declared flag's value does not coerce.
    """
    schema = _known_schema(specs)
    tokens = scan(argv)
    store = {}
    remainder = []
    binding = _Binding(tokens, lambda: ((schema, store),), split=split, strict=False)

    position = 0
    while position < len(tokens):
        token = tokens[position]
        if token.kind is TokenKind.MARKER:
            remainder.extend(token.text for token in tokens[position:])
            break
        if token.flag and (consumed := binding.consume(position)):
            position += consumed
            continue
        remainder.append(token.text)
        position += 1

    return KnownFlags(MappingProxyType(store), tuple(remainder))


__all__ = (
    # Types
    "HelpVariant",
    "ParseResult",
    "Parsed",
    "HelpRequested",
    "Failed",
    "Outcome",
    "KnownFlags",
    "Known",

    # Functions
    "bind",
    "locate",
    "intercept",
    "known",
    "parse_known",
)
