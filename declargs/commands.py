"""
declargs command layer: build command trees and dispatch argument vectors.

What this module provides
- Command: a node of a command tree.
  • a leaf wraps a handler whose first parameter is annotated with its options
    dataclass; the handler receives the options instance (and the ParseResult
    when it takes a second parameter).
  • a group holds subcommands (flat or nested namespaces) and may not have a handler.
  • the root may carry a globals dataclass whose flags are accepted before and
    after the subcommand path.
- command(...): create a root Command or a decorator that produces one.
- invoke(object, argv): convenience runner.

Dispatch (Command.run)
1. tokenize: sys.argv[1:] by default, shlex for strings, or an iterable of str.
2. resolve: walk the leading positional tokens down the tree, rewriting aliases
   to canonical names (values of global and reachable leaf flags are skipped).
3. bind the vector against the leaf's options and the root globals.
4. Parsed -> call the handler; HelpRequested -> print human or LLM help;
   Failed -> trigger the fault (raise, or print and exit in shell mode).

Quick start
    @dataclass
    class Globals:
        verbose: bool = flag(short="v")

    @dataclass
    class Deploy:
        service: str = positional(0)
        http: Port = flag(range="1-65535", default="8080")

    app = Command("app", globals=Globals, shell=True, colorful=True)

    @app.command(aliases=("d",))
    def deploy(options: Deploy, result):
        print(options.service, result.globals.verbose)

    if __name__ == "__main__":
        app.run()
"""
import difflib
import functools
import inspect
import logging
import operator
import os.path
import re
import shlex
import sys
import typing
import warnings
from collections import deque
from collections.abc import Iterable
from warnings import catch_warnings

from rich.console import Console
from rich.text import Text

from . import help as helper
from .binder import *
from .binder import _skips
from .faults import *
from .scanner import *
from .schema import *
from .utils import *

logger = logging.getLogger(__name__)

RESERVED_COMMANDS = frozenset(("help",))


class CommandType(type):
    """
    Metaclass for Command.

    - __typename__ derived from the class name, used in validation messages.
    - read-only properties for every name in __introspectable__.
    - __repr__/__rich_repr__ over __displayable__ (or __introspectable__).
    """
    __introspectable__ = ()
    __displayable__ = Unset

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
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _process_strings(cls, metadata):
    """
    Normalize scalar text metadata (name, descr, epilog): str | Text | Unset,
    trimmed and non-empty; Unset becomes None.
    """
    for name in ("name", "descr", "epilog"):
        if not isinstance(object := metadata[name], str | Text | UnsetType):
            raise TypeError(f"{cls.__typename__} {name!r} must be a string")
        elif isinstance(object, str) and not (object := object.strip()):
            raise ValueError(f"{cls.__typename__} {name!r} cannot be empty")
        metadata[name] = coalesce(object)


def _process_iterables(cls, metadata):
    """
    Normalize aliases and examples into tuples of unique, non-empty strings.
    """
    for name in ("aliases", "examples"):
        if isinstance(object := metadata[name], str) or not isinstance(object, Iterable):
            raise TypeError(f"{cls.__typename__} {name!r} must be an iterable of strings")
        seen = []
        for item in object:
            if not isinstance(item, str | Text):
                raise TypeError(f"{cls.__typename__} {name!r} must be an iterable of strings")
            elif isinstance(item, str) and not (item := item.strip()):
                raise ValueError(f"{cls.__typename__} {name!r} must be an iterable of non-empty strings")
            elif str(item) in seen:
                raise ValueError(f"{cls.__typename__} {name!r} cannot contain duplicates")
            seen.append(item)
        metadata[name] = tuple(seen)


def _process_schemas(cls, metadata):
    """
    Resolve options/globals/arguments into schemas. The options structure of a
    leaf defaults to the annotation of the handler's first parameter.
    """
    handler = metadata["handler"]
    if handler is not Unset and not callable(handler):
        raise TypeError(f"{cls.__typename__} handler must be callable")

    if metadata["options"] is Unset and handler is not Unset:
        parameters = list(inspect.signature(handler).parameters.values())
        if parameters:
            try:
                hints = typing.get_type_hints(handler)
            except (NameError, TypeError) as exception:
                raise SchemaError(f"cannot resolve annotations of {handler.__qualname__}: {exception}") from exception
            if (annotation := hints.get(parameters[0].name, Unset)) is Unset:
                raise TypeError(f"{cls.__typename__} handler's first parameter must be annotated with its options")
            metadata["options"] = annotation
        else:
            metadata["options"] = Schema()

    for name in ("options", "globals", "arguments"):
        if (object := metadata[name]) is not Unset and not isinstance(object, Schema):
            metadata[name] = introspect(object)

    if metadata["globals"] is not Unset and metadata["parent"] is not Unset:
        raise TypeError(f"{cls.__typename__} globals can only be declared on the root command")
    if (globals := metadata["globals"]) is not Unset and globals.positionals:
        raise SchemaError(f"{cls.__typename__} globals cannot declare positionals")
    if (arguments := metadata["arguments"]) is not Unset:
        if arguments.flags:
            raise SchemaError(f"{cls.__typename__} arguments can only declare positionals")
        if metadata["options"] is not Unset and metadata["options"].positionals:
            raise SchemaError(f"{cls.__typename__} positionals cannot be declared both in options and in arguments")


def _attach_to_parent(self, parent):
    """
    Register self (and its aliases) under parent; names and aliases share one
    namespace per group.
    """
    if parent is Unset:
        return
    if parent.handler is not Unset:
        raise TypeError(f"{type(self).__typename__} {parent.name!r} has a handler and cannot hold subcommands")
    typeof = "subcommand" if parent.parent else "command"
    names = (self.name, *self.aliases)
    for index, name in enumerate(names):
        if name in RESERVED_COMMANDS:
            raise ValueError(f"{type(self).__typename__} {typeof} name {name!r} is reserved")
        if name in parent._lookup or name in names[:index]:
            raise ValueError(f"{type(self).__typename__} {typeof} name {name!r} is already in use")
    parent._lookup.update(dict.fromkeys(names, self))
    parent._children[self.name] = self


class Command(metaclass=CommandType):
    """
    A node of a command tree (root, group or leaf).

    Properties
    - name, aliases, descr, epilog, examples: identity and help metadata.
    - handler: callable for leaves, Unset for groups.
    - options / arguments: schemas of the leaf (arguments holds positionals apart).
    - globals: schema of the global structure (root only).
    - parent / children: tree wiring; children is a read-only name -> Command map.
    - shell, fancy, colorful, verbose, split: runtime switches inherited from the
      parent when Unset (default False).
    """

    __introspectable__ = (
        "name",
        "aliases",
        "descr",
        "epilog",
        "examples",
        "handler",
        "options",
        "arguments",
        "globals",
        "parent",
        "children",
    )

    __displayable__ = (
        "name",
        "aliases",
        "descr",
        "route",
        "shell",
        "fancy",
        "colorful",
        "verbose",
    )

    def __init__(
            self,
            name=Unset,
            /,
            handler=Unset,
            *,
            parent=Unset,
            options=Unset,
            globals=Unset,
            arguments=Unset,
            descr=Unset,
            epilog=Unset,
            examples=(),
            aliases=(),
            shell=Unset,
            fancy=Unset,
            colorful=Unset,
            verbose=Unset,
            split=Unset,
    ):
        """
        Build a command node.

        Parameters
        - name: defaults to the handler's name (underscores become hyphens) or
          the running script's name.
        - handler: callable run for a successful parse of this leaf.
        - parent: Command under which to attach; prefer parent.command()/group().
        - options, globals, arguments: dataclass types or Schema objects.
        - descr, epilog, examples, aliases: help metadata (descr defaults to the
          handler's docstring).
        - shell, fancy, colorful, verbose, split: runtime switches.

        Raises
        - TypeError/ValueError on malformed metadata or name clashes.
        - SchemaError when a structure cannot be introspected.
        """
        if not isinstance(parent, Command | UnsetType):
            raise TypeError(f"{type(self).__typename__} 'parent' must be a command")

        metadata = {
            "name": coalesce(name, Unset if handler is Unset else re.sub(r"_+", "-", getattr(handler, "__name__", "").strip("_")) or Unset),
            "handler": handler,
            "descr": coalesce(descr, (inspect.getdoc(handler) or Unset) if handler is not Unset else Unset),
            "epilog": epilog,
            "examples": examples,
            "aliases": aliases,
            "options": options,
            "globals": globals,
            "arguments": arguments,
            "parent": parent,
        }
        if metadata["name"] is Unset:
            metadata["name"] = os.path.basename(sys.argv[0]) or "app"

        _process_strings(type(self), metadata)
        _process_iterables(type(self), metadata)
        _process_schemas(type(self), metadata)

        for name in (metadata["name"], *metadata["aliases"]) if parent is not Unset else ():
            if not isinstance(name, str) or not re.fullmatch(r"[^\W\d_](-?[^\W_]+)*", name):
                raise ValueError(f"{type(self).__typename__} name {str(name)!r} must be a valid subcommand name")

        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        self._children = {}
        self._lookup = {}
        self._shell = shell
        self._fancy = fancy
        self._colorful = colorful
        self._verbose = verbose
        self._split = split

        _attach_to_parent(self, parent)

    def _inherit(name):
        @rename(name)
        def getter(self):
            if (object := getattr(self, "_" + name)) is not Unset:
                return bool(object)
            return getattr(self.parent, name) if self.parent else False
        return property(getter)

    shell = _inherit("shell")
    fancy = _inherit("fancy")
    colorful = _inherit("colorful")
    verbose = _inherit("verbose")
    split = _inherit("split")

    del _inherit

    @property
    def root(self):
        """Topmost command of the tree."""
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """Ancestry from the root to this command."""
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def route(self):
        """Subcommand names from below the root down to this command."""
        return tuple(step.name for step in self.path[1:])

    def __call__(self, *args, **kwargs):
        if self._handler is Unset:
            raise TypeError(f"{type(self).__typename__} {self.name!r} is a group and cannot be called")
        return self._handler(*args, **kwargs)

    def command(self, handler=Unset, /, name=Unset, **kwargs):
        """
        Create a leaf under this command, directly or as a decorator.

            @app.command(aliases=("b",))
            def build(options: Build): ...

        Returns the new Command (direct form) or a decorator producing it.
        """
        @rename("command")
        def wrapper(handler, /):
            if not callable(handler):
                raise TypeError("@command() must be applied to a callable")
            return Command(name, handler, parent=self, **kwargs)

        return wrapper(handler) if handler is not Unset else wrapper

    def group(self, name, /, **kwargs):
        """
        Create a nested namespace under this command.
        """
        return Command(name, parent=self, **kwargs)

    def trigger(self, fault, /, **options):
        """
        Surface a fault with this command's runtime switches.
        """
        trigger(
            fault,
            prog=self.root.name,
            shell=self.shell,
            fancy=self.fancy,
            colorful=self.colorful,
            verbose=self.verbose,
            **options,
        )

    def resolve(self, argv, /, *, strict=True):
        """
        Walk the leading positional tokens down the tree.

        Returns
        - (node, route, argv): the deepest command reached, the canonical route
          from self and the vector with aliases rewritten to canonical names.

        Raises (strict only)
        - UnknownCommandError / UnknownSubcommandError for a token that names no child.
        - MissingCommandError when the vector ends on a group.
        """
        tokens = list(argv)
        node = self
        route = []
        globals = (self.root.globals,) if self.root.globals else ()
        skip = False
        for token in scan(tokens):
            if skip:
                skip = False
                continue
            if token.kind is TokenKind.MARKER:
                break
            if token.kind is not TokenKind.POSITIONAL:
                # flags before the subcommand may belong to any leaf still reachable
                skip = _skips(token, *globals, *_reachable_options(node))
                continue
            if not node.children:
                break
            if (child := node._lookup.get(text := token.text)) is None:
                if not strict:
                    break
                raise self._unknown(node, text, token.position)
            tokens[token.position] = child.name
            route.append(child.name)
            node = child

        if strict and node.children:
            raise MissingCommandError(
                "missing %s for '%s'" % ("subcommand" if node.parent else "command", _route(node)),
                title="missing command",
                code=FaultCode.MISSING_COMMAND,
                hint="pick one of %s or run '%s --help'" % (", ".join(map(repr, node.children)), _route(node)),
                choices=tuple(node.children),
                docs=getdoc(FaultCode.MISSING_COMMAND),
            )
        return node, tuple(route), tuple(tokens)

    def _unknown(self, node, text, position, /):
        typeof = "subcommand" if node.parent else "command"
        suggestions = difflib.get_close_matches(text, node._lookup.keys(), 5)
        try:
            hint = "did you mean %r? you can also run '%s --help' to see all %ss" % (suggestions[0], _route(node), typeof)
        except IndexError:
            hint = "try '%s --help' to see all available %ss" % (_route(node), typeof)
        fault = UnknownSubcommandError if node.parent else UnknownCommandError
        return fault(
            "unknown %s %r at %s position" % (typeof, text, ordinal(position + 1)),
            title="unknown %s" % typeof,
            code=FaultCode.UNKNOWN_SUBCOMMAND if node.parent else FaultCode.UNKNOWN_COMMAND,
            hint=hint,
            token=text,
            position=position,
            suggestions=tuple(suggestions),
            docs=getdoc(FaultCode.UNKNOWN_SUBCOMMAND if node.parent else FaultCode.UNKNOWN_COMMAND),
        )

    def help(self, *, llm=False, console=Unset):
        """
        Print this command's help (human by default, LLM-oriented with llm=True).
        """
        if llm:
            coalesce(console, Console()).print(helper.render_llm(self), markup=False, highlight=False, emoji=False, end="", soft_wrap=True)
        else:
            helper.render(self, console=console)

    def _help(self, request, node, tokens, /):
        """
        Print the help a HelpRequested outcome asks for.
        """
        if tokens[:1] == ("help",):
            node, _, _ = self.resolve(tokens[1:], strict=False)
        elif request.variant is HelpVariant.GENERAL:
            node = self
        elif request.variant is HelpVariant.LLM and not request.route:
            node = self
        node.help(llm=request.variant is HelpVariant.LLM)

    def run(self, argv=Unset, /):
        """
        Execute the tree with an argument vector.

        Parameters
        - argv: Unset (sys.argv[1:]), a shell-like str (split with shlex) or an
          iterable of str (used as-is).

        Returns
        - the handler's return value, or None when help was printed.
        """
        tokens = _tokenize(argv)
        globals = coalesce(self.root.globals, Unset)
        node, route, rewritten = self.resolve(tokens, strict=False)

        if node.children or node.handler is Unset:
            # Help must still work on incomplete routes (e.g. "app grp --help").
            if (request := intercept(rewritten, route=route, prog=self.root.name, globals=globals)) is not None:
                return self._help(request, node, rewritten)
            try:
                node, route, rewritten = self.resolve(tokens)
            except CommandException as fault:
                return self.trigger(fault)

        if node.handler is Unset:
            raise TypeError(f"{type(self).__typename__} {node.name!r} has neither a handler nor subcommands")

        logger.debug("dispatching %r to %s", route, _route(node))

        with catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            outcome = bind(
                rewritten,
                node.options,
                globals=globals,
                arguments=node.arguments,
                route=route,
                split=node.split,
                prog=self.root.name,
            )

        for warning in caught:
            if isinstance(warning.message, CommandWarning):
                node.trigger(warning.message)
            else:
                warnings.warn_explicit(warning.message, warning.category, warning.filename, warning.lineno)

        match outcome:
            case Parsed(result=result):
                parameters = inspect.signature(node.handler).parameters
                logger.debug("calling handler of %s", _route(node))
                if len(parameters) >= 2:
                    return node.handler(result.options, result)
                if len(parameters) == 1:
                    return node.handler(result.options)
                return node.handler()
            case HelpRequested() as request:
                return self._help(request, node, rewritten)
            case Failed(fault=fault):
                node.trigger(fault)

    __invoke__ = run


def _reachable_options(command, /):
    """
    Option schemas of the leaves below `command`, breadth first.
    """
    pending = deque([command])
    while pending:
        node = pending.popleft()
        if node.options:
            yield node.options
        pending.extend(node.children.values())


def _route(command, /):
    return " ".join(step.name for step in command.path)


def _tokenize(argv, /):
    """
    Normalize an argument source into a tuple of str as accepted by run().
    """
    if argv is Unset:
        return tuple(sys.argv[1:])
    if isinstance(argv, str):
        return tuple(shlex.split(argv))
    if isinstance(argv, Iterable):
        tokens = tuple(argv)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("run() argument must be a string or an iterable of strings")
        return tokens
    raise TypeError("run() argument must be a string or an iterable of strings")


def command(handler=Unset, /, name=Unset, **kwargs):
    """
    Create a root Command from a handler, or return a decorator doing so.

        @command(shell=True)
        def tool(options: Options): ...
    """
    @rename("command")
    def wrapper(handler, /):
        if not callable(handler):
            raise TypeError("@command() must be applied to a callable")
        return Command(name, handler, **kwargs)

    return wrapper(handler) if handler is not Unset else wrapper


def invoke(object, argv=Unset, /):
    """
    Run a Command (or a plain handler wrapped on the fly) with an argument vector.
    """
    if hasattr(object, "__invoke__") and callable(object.__invoke__):
        return object.__invoke__(argv)
    if callable(object):
        return invoke(command(object), argv)
    target = "argument" if argv is Unset else "first argument"
    raise TypeError(f"invoke() {target} must implement __invoke__ method") from None


__all__ = (
    "Command",
    "command",
    "invoke",
    "RESERVED_COMMANDS",
)

del CommandType
