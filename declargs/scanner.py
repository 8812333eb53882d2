"""
declargs token scanner.

scan(argv) classifies every element of an argument vector without consuming it
and without knowing any schema:

    --name / --name=value   LONG        (name, inline value or Unset)
    -x / -xrest             SHORT       (first character, rest of the token or Unset)
    --                      MARKER      (first bare "--" only)
    after the marker        PASSTHROUGH (verbatim, whatever they look like)
    anything else           POSITIONAL  (including a lone "-")

Whether a token ends up as a flag value, a subcommand name or a positional is
decided by the binder; the scanner only segments.
"""
from collections.abc import Iterable
from enum import Enum
from typing import NamedTuple

from .utils import *


class TokenKind(Enum):
    LONG = "long"
    SHORT = "short"
    POSITIONAL = "positional"
    MARKER = "marker"
    PASSTHROUGH = "passthrough"


class Token(NamedTuple):
    """A classified argument: kind, raw text, position in argv, flag name and inline value."""
    kind: TokenKind
    text: str
    position: int
    name: str | UnsetType = Unset
    value: str | UnsetType = Unset

    @property
    def flag(self):
        return self.kind in (TokenKind.LONG, TokenKind.SHORT)


def classify(text, position=0, /):
    """
    Classify a single token outside of passthrough context.
    """
    if text == "--":
        return Token(TokenKind.MARKER, text, position)
    if text.startswith("--"):
        name, equals, value = text[2:].partition("=")
        return Token(TokenKind.LONG, text, position, name, value if equals else Unset)
    if text.startswith("-") and len(text) > 1:
        return Token(TokenKind.SHORT, text, position, text[1], text[2:] or Unset)
    return Token(TokenKind.POSITIONAL, text, position)


def scan(argv, /):
    """
    Classify an argument vector into a tuple of tokens, one per element.

    Raises
    - TypeError: argv is a plain string or contains a non-string element.
    """
    if isinstance(argv, str) or not isinstance(argv, Iterable):
        raise TypeError("scan() argument must be an iterable of strings")

    tokens = []
    passthrough = False
    for index, text in enumerate(argv):
        if not isinstance(text, str):
            raise TypeError("scan() argument must be an iterable of strings")
        if passthrough:
            tokens.append(Token(TokenKind.PASSTHROUGH, text, index))
            continue
        tokens.append(token := classify(text, index))
        passthrough = token.kind is TokenKind.MARKER
    return tuple(tokens)


__all__ = (
    "TokenKind",
    "Token",
    "classify",
    "scan",
)
