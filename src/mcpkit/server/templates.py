"""URI templates: patterns with named ``{placeholders}``.

A template such as ``user://{id}/profile`` is literal text around one or more
placeholders.  Each placeholder captures a non-empty, maximal run of its
character class; the default class is one path segment (anything except
``/``, ``?`` and ``#``).  Narrower classes are declared per placeholder::

    UriTemplate("user://{id}/profile", constraints={"id": "digits"})

The pattern is validated and compiled once, at construction.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum

from mcpkit.protocol.errors import TemplateSyntaxError


class CharClass(str, Enum):
    """Characters a placeholder may capture."""

    SEGMENT = "segment"
    DIGITS = "digits"
    ALPHA = "alpha"
    ALNUM = "alnum"


_CLASS_PATTERNS: dict[CharClass, str] = {
    CharClass.SEGMENT: r"[^/?#]+",
    CharClass.DIGITS: r"[0-9]+",
    CharClass.ALPHA: r"[A-Za-z]+",
    CharClass.ALNUM: r"[A-Za-z0-9]+",
}


def _parse(pattern: str) -> tuple[list[str], list[str]]:
    """Split *pattern* into literals and placeholder names.

    ``len(literals) == len(names) + 1``; literals between placeholders are
    never empty.
    """
    literals: list[str] = []
    names: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "}":
            raise TemplateSyntaxError(pattern, f"unmatched '}}' at offset {i}")
        if char != "{":
            current.append(char)
            i += 1
            continue

        end = pattern.find("}", i + 1)
        if end == -1:
            raise TemplateSyntaxError(pattern, f"unclosed '{{' at offset {i}")
        name = pattern[i + 1 : end]
        if "{" in name:
            raise TemplateSyntaxError(pattern, f"nested '{{' at offset {i}")
        if not name.isidentifier():
            raise TemplateSyntaxError(pattern, f"invalid placeholder name {name!r}")
        if name in names:
            raise TemplateSyntaxError(pattern, f"duplicate placeholder {name!r}")
        if names and not current:
            raise TemplateSyntaxError(
                pattern, f"placeholder {name!r} directly follows {names[-1]!r}"
            )
        literals.append("".join(current))
        names.append(name)
        current = []
        i = end + 1

    literals.append("".join(current))
    if not names:
        raise TemplateSyntaxError(pattern, "no placeholders")
    return literals, names


class UriTemplate:
    """A compiled URI pattern that extracts placeholder bindings."""

    def __init__(
        self,
        pattern: str,
        constraints: Mapping[str, CharClass | str] | None = None,
    ) -> None:
        self.pattern = pattern
        self._literals, self.variables = _parse(pattern)

        declared = dict(constraints or {})
        unknown = set(declared) - set(self.variables)
        if unknown:
            raise TemplateSyntaxError(
                pattern, f"constraint for unknown placeholder(s): {', '.join(sorted(unknown))}"
            )
        try:
            self.constraints = {
                name: CharClass(declared.get(name, CharClass.SEGMENT)) for name in self.variables
            }
        except ValueError as exc:
            raise TemplateSyntaxError(pattern, str(exc)) from exc

        parts = [re.escape(self._literals[0])]
        for name, literal in zip(self.variables, self._literals[1:], strict=True):
            parts.append(f"(?P<{name}>{_CLASS_PATTERNS[self.constraints[name]]})")
            parts.append(re.escape(literal))
        self._regex = re.compile("".join(parts))

    def __repr__(self) -> str:
        return f"UriTemplate({self.pattern!r})"

    @property
    def shape(self) -> str:
        """The pattern with names erased, e.g. ``user://{digits}/profile``.

        Two templates with the same shape accept exactly the same URIs.
        """
        out = [self._literals[0]]
        for name, literal in zip(self.variables, self._literals[1:], strict=True):
            out.append("{" + self.constraints[name].value + "}")
            out.append(literal)
        return "".join(out)

    def match(self, uri: str) -> dict[str, str] | None:
        """Return the bindings if *uri* matches the whole template, else ``None``."""
        found = self._regex.fullmatch(uri)
        if found is None:
            return None
        return found.groupdict()
