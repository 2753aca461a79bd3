"""Debian package version parsing and ordering."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass

_EPOCH = re.compile(r"[+-]?[0-9]+")
_UPSTREAM_SYMBOLS = frozenset(".-+~:_")
_REVISION_SYMBOLS = frozenset("+.~_")


def _is_digit(char: str) -> bool:
    return char.isdigit()


def _order(char: str) -> int:
    if char.isdigit():
        return 0
    if char.isalpha():
        return ord(char)
    if char == "~":
        return -1
    return ord(char) + 256


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _compare_part(a: str, b: str) -> int:
    """Compare two upstream versions or two revisions the way dpkg does."""
    i = j = 0
    while i < len(a) or j < len(b):
        while (i < len(a) and not _is_digit(a[i])) or (j < len(b) and not _is_digit(b[j])):
            ac = _order(a[i]) if i < len(a) else 0
            bc = _order(b[j]) if j < len(b) else 0
            if ac != bc:
                return _sign(ac - bc)
            i += 1
            j += 1
        start_a = i
        while i < len(a) and _is_digit(a[i]):
            i += 1
        start_b = j
        while j < len(b) and _is_digit(b[j]):
            j += 1
        na = int(a[start_a:i] or "0")
        nb = int(b[start_b:j] or "0")
        if na != nb:
            return _sign(na - nb)
    return 0


def _check_upstream(upstream: str) -> None:
    if not upstream:
        raise ValueError("upstream_version is empty")
    if not upstream[0].isdigit():
        raise ValueError("upstream_version must start with digit")
    for char in upstream:
        if not (char.isdigit() or char.isalpha() or char in _UPSTREAM_SYMBOLS):
            raise ValueError("upstream_version includes invalid character")


def _check_revision(revision: str) -> None:
    for char in revision:
        if not (char.isdigit() or char.isalpha() or char in _REVISION_SYMBOLS):
            raise ValueError("debian_revision includes invalid character")


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class DebianVersion:
    """A version in the form [epoch:]upstream_version[-debian_revision]."""

    epoch: int = 0
    upstream: str = "0"
    revision: str = ""

    @classmethod
    def parse(cls, text: str) -> DebianVersion:
        text = text.strip()
        epoch = 0
        if ":" in text:
            epoch_text, text = text.split(":", 1)
            if not _EPOCH.fullmatch(epoch_text):
                raise ValueError(f"epoch parse error: {epoch_text!r}")
            epoch = int(epoch_text)
            if epoch < 0:
                raise ValueError("epoch is negative")
        upstream, sep, revision = text.rpartition("-")
        if not sep:
            upstream, revision = text, ""
        elif not revision:
            raise ValueError("debian_revision is empty")
        _check_upstream(upstream)
        _check_revision(revision)
        return cls(epoch=epoch, upstream=upstream, revision=revision)

    def compare(self, other: DebianVersion) -> int:
        """Return -1, 0 or 1 as this version sorts before, with or after ``other``."""
        if self.epoch != other.epoch:
            return _sign(self.epoch - other.epoch)
        result = _compare_part(self.upstream, other.upstream)
        if result:
            return result
        return _compare_part(self.revision, other.revision)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DebianVersion):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: DebianVersion) -> bool:
        if not isinstance(other, DebianVersion):
            return NotImplemented
        return self.compare(other) < 0

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        text = f"{self.epoch}:" if self.epoch else ""
        text += self.upstream
        if self.revision:
            text += f"-{self.revision}"
        return text


def compare_versions(v1: str, v2: str) -> int:
    """Compare two Debian versions; an empty version sorts before any other."""
    if not v1 and not v2:
        return 0
    if not v1:
        return -1
    if not v2:
        return 1
    try:
        first = DebianVersion.parse(v1)
        second = DebianVersion.parse(v2)
    except ValueError as exc:
        raise ValueError(f"version error: {exc}") from exc
    return first.compare(second)