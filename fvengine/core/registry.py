"""
Run-time selection tables.

Every category (interpolation schemes, gradient schemes, boundary
conditions, linear solvers, ...) owns one SchemeRegistry. Names are only
unique within their category, so looking up a gradient scheme name in the
interpolation table fails exactly like an unknown name would.

Entries are registered with a class decorator at import time; registering
the same word twice raises ConfigurationError immediately.
"""

import logging
import re

from fvengine.errors import ConfigurationError, unknown_entry_message

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"[^\s()]+(?:\([^\s()]*\))?")


class SchemeStream:
    """Token stream over one scheme entry, e.g. ``"Gauss limitedLinear 1"``."""

    def __init__(self, tokens, source=None):
        if isinstance(tokens, str):
            source = tokens if source is None else source
            tokens = _TOKEN.findall(tokens)
        self._tokens = [str(t) for t in tokens]
        self._pos = 0
        self.source = source if source is not None else " ".join(self._tokens)

    @classmethod
    def coerce(cls, stream):
        if isinstance(stream, SchemeStream):
            return stream
        if stream is None:
            return cls([])
        if isinstance(stream, (list, tuple)):
            return cls(stream)
        return cls(str(stream))

    def eof(self):
        return self._pos >= len(self._tokens)

    def peek(self):
        return None if self.eof() else self._tokens[self._pos]

    def read_word(self, what="scheme"):
        if self.eof():
            raise ConfigurationError(
                f"Expected {what} in '{self.source}' but reached the end of the entry"
            )
        word = self._tokens[self._pos]
        self._pos += 1
        return word

    def read_scalar(self, what="coefficient"):
        word = self.read_word(what)
        try:
            return float(word)
        except ValueError:
            raise ConfigurationError(
                f"Expected a number for {what} in '{self.source}', got '{word}'"
            ) from None

    def remaining(self):
        return self._tokens[self._pos:]

    def check_consumed(self):
        if not self.eof():
            raise ConfigurationError(
                f"Unexpected trailing entries {self.remaining()} in '{self.source}'"
            )

    def __repr__(self):
        return f"SchemeStream({self.source!r})"


class SchemeRegistry:
    """Maps a word to a constructor within one category."""

    def __init__(self, category):
        self.category = category
        self._table = {}
        self._aliases = {}

    def register(self, name, aliases=()):
        def decorator(cls):
            self.add(name, cls)
            for alias in aliases:
                self.add_alias(alias, name)
            cls.type_name = name
            return cls

        return decorator

    def add(self, name, constructor):
        if name in self._table or name in self._aliases:
            raise ConfigurationError(
                f"Duplicate entry '{name}' in {self.category} table"
            )
        self._table[name] = constructor

    def add_alias(self, alias, canonical):
        if alias in self._table or alias in self._aliases:
            raise ConfigurationError(
                f"Duplicate entry '{alias}' in {self.category} table"
            )
        if canonical not in self._table:
            raise ConfigurationError(
                f"Alias '{alias}' refers to unknown {self.category} type '{canonical}'"
            )
        self._aliases[alias] = canonical

    def names(self):
        """Sorted canonical names (aliases are not listed)."""
        return sorted(self._table)

    def canonical(self, name):
        return self._aliases.get(name, name)

    def lookup(self, name):
        constructor = self._table.get(self.canonical(name))
        if constructor is None:
            raise ConfigurationError(
                unknown_entry_message(self.category, name, self._table)
            )
        return constructor

    def new(self, mesh, stream, *args, **kwargs):
        stream = SchemeStream.coerce(stream)
        if stream.eof():
            raise ConfigurationError(
                f"{self.category} scheme not specified\n\n"
                + unknown_entry_message(self.category, "", self._table).split("\n\n", 1)[1]
            )
        name = stream.read_word(f"{self.category} scheme")
        constructor = self.lookup(name)
        logger.debug("Selecting %s scheme %s", self.category, self.canonical(name))
        return constructor(mesh, stream, *args, **kwargs)

    def __contains__(self, name):
        return self.canonical(name) in self._table

    def __len__(self):
        return len(self._table)

    def __repr__(self):
        return f"SchemeRegistry({self.category!r}, {self.names()})"
