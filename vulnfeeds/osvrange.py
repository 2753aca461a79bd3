"""Version ranges taken from OSV events, with per-ecosystem version ordering."""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import zip_longest
from typing import Any, Callable

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from vulnfeeds.osvmodel import (
    ECOSYSTEM_CRATES,
    ECOSYSTEM_GO,
    ECOSYSTEM_MAVEN,
    ECOSYSTEM_NPM,
    ECOSYSTEM_NUGET,
    ECOSYSTEM_PYPI,
    ECOSYSTEM_RUBYGEMS,
)

_CLAUSE = re.compile(r"\s*(<=|>=|<|>|=)?\s*(\S+)\s*")

_OPS: dict[str, Callable[[int], bool]] = {
    "=": lambda c: c == 0,
    "<": lambda c: c < 0,
    "<=": lambda c: c <= 0,
    ">": lambda c: c > 0,
    ">=": lambda c: c >= 0,
}

_GENERIC = re.compile(
    r"v?(?P<num>[0-9]+(?:\.[0-9]+)*)"
    r"(?:-?(?P<pre>[0-9A-Za-z~-]+(?:\.[0-9A-Za-z~-]+)*))?"
    r"(?:\+(?P<meta>[0-9A-Za-z~.-]+))?"
)
_SEMVER = re.compile(
    r"[v=]?(?P<num>[0-9]+(?:\.[0-9]+){0,2})"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<meta>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
)
_GEM = re.compile(r"[0-9]+(?:\.[0-9a-zA-Z]+)*(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?")
_MAVEN_CHARS = re.compile(r"[0-9a-z._+\-]+")

_MAVEN_QUALIFIERS = ("alpha", "beta", "milestone", "rc", "snapshot", "", "sp")
_MAVEN_ALIASES = {"ga": "", "final": "", "release": "", "cr": "rc"}
_MAVEN_SHORT = {"a": "alpha", "b": "beta", "m": "milestone"}


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


@dataclass(frozen=True)
class _Semantic:
    segments: tuple[int, ...]
    pre: tuple[str, ...]


def _parse_semantic(text: str, pattern: re.Pattern[str]) -> _Semantic:
    match = pattern.fullmatch(text.strip())
    if not match:
        raise ValueError(f"malformed version: {text}")
    segments = tuple(int(part) for part in match.group("num").split("."))
    pre = tuple(match.group("pre").split(".")) if match.group("pre") else ()
    return _Semantic(segments, pre)


def _compare_identifier(x: str, y: str) -> int:
    if x.isdigit() and y.isdigit():
        return _sign(int(x) - int(y))
    if x.isdigit():
        return -1
    if y.isdigit():
        return 1
    return (x > y) - (x < y)


def _compare_semantic(a: _Semantic, b: _Semantic) -> int:
    for x, y in zip_longest(a.segments, b.segments, fillvalue=0):
        if x != y:
            return _sign(x - y)
    if not a.pre and not b.pre:
        return 0
    # A release sorts after all of its pre-releases.
    if not a.pre:
        return 1
    if not b.pre:
        return -1
    for x, y in zip_longest(a.pre, b.pre):
        if x is None:
            return -1
        if y is None:
            return 1
        result = _compare_identifier(x, y)
        if result:
            return result
    return 0


class VersionRange:
    """A range opened by an "introduced" event and closed by a fixed or last affected one.

    Versions are ordered loosely: dotted numbers with an optional pre-release.
    """

    def __init__(self, introduced: str) -> None:
        self.introduced = introduced
        self.to = ""
        self.to_included = False

    def __str__(self) -> str:
        if self.to_included and self.introduced == self.to:
            return f"={self.introduced}"
        upper = ""
        if self.to:
            upper = f"<={self.to}" if self.to_included else f"<{self.to}"
        if not upper:
            return f">={self.introduced}"
        # ">=0" says nothing and is left out.
        if self.introduced == "0":
            return upper
        return f">={self.introduced}, {upper}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"

    def set_fixed(self, fixed: str) -> None:
        self.to = fixed
        self.to_included = False

    def set_last_affected(self, last_affected: str) -> None:
        self.to = last_affected
        self.to_included = True

    def contains(self, version: str) -> bool:
        """Tell whether ``version`` lies in the range; ValueError if either cannot be parsed."""
        try:
            clauses = [self._clause(part) for part in str(self).split(",")]
        except ValueError as exc:
            raise ValueError(f"failed to parse version constraint: {exc}") from exc
        try:
            target = self._parse_version(version)
        except ValueError as exc:
            raise ValueError(f"failed to parse version: {exc}") from exc
        return all(_OPS[op](self._compare(target, bound)) for op, bound in clauses)

    def _clause(self, text: str) -> tuple[str, Any]:
        match = _CLAUSE.fullmatch(text)
        if not match:
            raise ValueError(f"improper constraint: {text!r}")
        return match.group(1) or "=", self._parse_version(match.group(2))

    def _parse_version(self, text: str) -> Any:
        return _parse_semantic(text, _GENERIC)

    def _compare(self, a: Any, b: Any) -> int:
        return _compare_semantic(a, b)


class DefaultVersionRange(VersionRange):
    """Range for ecosystems without a dedicated version scheme."""


class SemVerRange(VersionRange):
    """Range over semantic versions (Go, crates.io, NuGet)."""

    def _parse_version(self, text: str) -> _Semantic:
        return _parse_semantic(text, _SEMVER)


class NpmVersionRange(VersionRange):
    """Range over npm versions."""

    def _parse_version(self, text: str) -> _Semantic:
        return _parse_semantic(text, _SEMVER)


class RubyGemsVersionRange(VersionRange):
    """Range over RubyGems versions; any letter makes a pre-release."""

    def _parse_version(self, text: str) -> list[int | str]:
        text = text.strip()
        if not _GEM.fullmatch(text):
            raise ValueError(f"malformed version number string {text}")
        parts = re.findall(r"[0-9]+|[a-z]+", text.replace("-", ".pre."), flags=re.IGNORECASE)
        return [int(part) if part.isdigit() else part for part in parts]

    def _compare(self, a: list[int | str], b: list[int | str]) -> int:
        for x, y in zip_longest(a, b, fillvalue=0):
            if x == y:
                continue
            if isinstance(x, str) and isinstance(y, int):
                return -1
            if isinstance(x, int) and isinstance(y, str):
                return 1
            return -1 if x < y else 1  # type: ignore[operator]
        return 0


class PyPIVersionRange(VersionRange):
    """Range over PEP 440 versions."""

    def contains(self, version: str) -> bool:
        clauses = []
        for part in str(self).split(","):
            part = part.strip()
            if part.startswith("=") and not part.startswith("=="):
                part = "=" + part
            clauses.append(part)
        try:
            specifiers = SpecifierSet(",".join(clauses))
        except InvalidSpecifier as exc:
            raise ValueError(f"failed to parse version constraint: {exc}") from exc
        try:
            parsed = Version(version)
        except InvalidVersion as exc:
            raise ValueError(f"failed to parse version: {exc}") from exc
        return specifiers.contains(parsed)

    def _parse_version(self, text: str) -> Version:
        try:
            return Version(text)
        except InvalidVersion as exc:
            raise ValueError(str(exc)) from exc

    def _compare(self, a: Version, b: Version) -> int:
        return (a > b) - (a < b)


def _maven_rank(qualifier: str) -> tuple[int, str]:
    if qualifier in _MAVEN_QUALIFIERS:
        return _MAVEN_QUALIFIERS.index(qualifier), ""
    return len(_MAVEN_QUALIFIERS), qualifier


def _maven_compare_item(a: int | str | None, b: int | str | None) -> int:
    if a is None and b is None:
        return 0
    if a is None:
        return -_maven_compare_item(b, None)
    if isinstance(a, int):
        if b is None:
            return _sign(a)
        if isinstance(b, int):
            return _sign(a - b)
        return 1
    if isinstance(b, int):
        return -1
    rank_a, rank_b = _maven_rank(a), _maven_rank(b if b is not None else "")
    return (rank_a > rank_b) - (rank_a < rank_b)


class MavenVersionRange(VersionRange):
    """Range over Maven versions with qualifier ordering."""

    def _parse_version(self, text: str) -> list[int | str]:
        raw = text.strip().lower()
        if not raw or not _MAVEN_CHARS.fullmatch(raw):
            raise ValueError(f"malformed version: {text}")
        items: list[int | str] = []
        for match in re.finditer(r"[0-9]+|[^0-9.\-]+", raw):
            token = match.group()
            if token.isdigit():
                items.append(int(token))
                continue
            follows_digit = match.end() < len(raw) and raw[match.end()].isdigit()
            if follows_digit and token in _MAVEN_SHORT:
                token = _MAVEN_SHORT[token]
            items.append(_MAVEN_ALIASES.get(token, token))
        while items and items[-1] in (0, ""):
            items.pop()
        return items

    def _compare(self, a: list[int | str], b: list[int | str]) -> int:
        for x, y in zip_longest(a, b):
            result = _maven_compare_item(x, y)
            if result:
                return result
        return 0


def new_version_range(ecosystem: str, introduced: str) -> VersionRange:
    """Create the range type that orders versions of ``ecosystem``."""
    if ecosystem == ECOSYSTEM_NPM:
        return NpmVersionRange(introduced)
    if ecosystem == ECOSYSTEM_RUBYGEMS:
        return RubyGemsVersionRange(introduced)
    if ecosystem == ECOSYSTEM_PYPI:
        return PyPIVersionRange(introduced)
    if ecosystem == ECOSYSTEM_MAVEN:
        return MavenVersionRange(introduced)
    if ecosystem in (ECOSYSTEM_GO, ECOSYSTEM_CRATES, ECOSYSTEM_NUGET):
        return SemVerRange(introduced)
    return DefaultVersionRange(introduced)