"""
declargs registry: named schemas for tooling (docs generators, shell wrappers,
agents that need the command surface as data).

A Registry is owned by whoever creates it; there is no process-wide instance.

    registry = Registry()
    registry.register(Deploy)              # keyed "Deploy"
    registry.register(Globals, "globals")
    registry.describe("Deploy")            # JSON-serializable dict

    Registry.of(app)                       # every node of a command tree, keyed by route
"""
import logging
from collections.abc import Iterator

from .schema import *
from .utils import *

logger = logging.getLogger(__name__)


def _describe_flag(spec, /):
    return {
        "name": spec.name,
        "short": coalesce(spec.short),
        "kind": spec.kind.name,
        "default": coalesce(spec.default),
        "help": spec.help,
        "range": list(spec.range) if spec.range is not Unset else None,
        "repeatable": spec.kind.slice,
        "split": spec.split,
        "optional": spec.kind.optional,
        "field": spec.field,
    }


def _describe_positional(spec, /):
    return {
        "name": spec.name,
        "index": spec.index,
        "arity": spec.arity.name.lower().replace("_", "-"),
        "kind": spec.kind.name,
        "help": spec.help,
        "field": spec.field,
    }


class Registry:
    """
    Mapping of names to schemas, iterable in registration order.
    """

    def __init__(self):
        self._schemas = {}

    def register(self, target, name=Unset, /):
        """
        Register a dataclass (or a ready Schema) under a name, defaulting to the
        class name. Returns target unchanged, so it also works as a decorator.

        Raises
        - ValueError: the name is already taken or cannot be derived.
        - SchemaError: the dataclass does not describe a valid schema.
        """
        schema = target if isinstance(target, Schema) else introspect(target)
        if name is Unset:
            if (name := getattr(schema.target, "__name__", Unset)) is Unset:
                raise ValueError("register() needs a name for a schema without target")
        if not isinstance(name, str) or not name:
            raise TypeError("register() name must be a non-empty string")
        if self._schemas.setdefault(name, schema) is not schema:
            raise ValueError(f"register() name {name!r} is already in use")
        logger.debug("registered schema %r", name)
        return target

    def schema(self, name, /):
        """
        The schema registered under name (KeyError when missing).
        """
        try:
            return self._schemas[name]
        except KeyError:
            raise KeyError(f"no schema registered under {name!r}") from None

    def describe(self, name, /):
        schema = self.schema(name)
        return {
            "name": name,
            "target": getattr(schema.target, "__qualname__", None),
            "flags": [_describe_flag(spec) for spec in schema.flags],
            "positionals": [_describe_positional(spec) for spec in schema.positionals],
        }

    def describe_all(self):
        return [self.describe(name) for name in self._schemas]

    @classmethod
    def of(cls, command, /):
        """
        Registry of every schema reachable from a command tree.

        Leaves are keyed by their full route ("app deploy"); a separate
        positional structure gets an " <arguments>" suffix and the root's global
        structure is keyed "<root> <globals>".
        """
        registry = cls()
        root = command.root
        if root.globals is not Unset:
            registry.register(root.globals, f"{root.name} <globals>")

        pending = [command]
        while pending:
            node = pending.pop(0)
            route = " ".join(step.name for step in node.path)
            if node.options is not Unset:
                registry.register(node.options, route)
            if node.arguments is not Unset:
                registry.register(node.arguments, f"{route} <arguments>")
            pending.extend(node.children.values())
        return registry

    def __contains__(self, name, /):
        return name in self._schemas

    def __len__(self):
        return len(self._schemas)

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __repr__(self):
        return f"registry({', '.join(map(repr, self._schemas))})"

    def __rich_repr__(self):
        yield from self._schemas.items()


__all__ = (
    "Registry",
)
