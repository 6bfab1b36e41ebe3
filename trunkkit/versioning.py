"""Semantic versions, version requirements and the project version check."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering

NAME = "trunk"
VERSION = "0.1.0"

_log = logging.getLogger(__name__)

_NUMBER = re.compile(r"0|[1-9][0-9]*")
_IDENTIFIER = re.compile(r"[0-9A-Za-z-]+")
_WILDCARDS = ("*", "x", "X")
_OPERATORS = (">=", "<=", "=", ">", "<", "~", "^")


class VersionMismatchError(Exception):
    """Raised when the running version does not satisfy a project's requirement."""


def _parse_number(text: str, what: str) -> int:
    if not _NUMBER.fullmatch(text):
        raise ValueError(f"invalid {what} version number: {text!r}")
    return int(text)


def _parse_identifiers(text: str, what: str, *, strict_numbers: bool) -> tuple[str, ...]:
    if not text:
        raise ValueError(f"empty {what}")
    parts = tuple(text.split("."))
    for part in parts:
        if not _IDENTIFIER.fullmatch(part):
            raise ValueError(f"invalid {what} identifier: {part!r}")
        if strict_numbers and part.isdigit() and len(part) > 1 and part.startswith("0"):
            raise ValueError(f"leading zero in {what} identifier: {part!r}")
    return parts


def _identifier_key(part: str) -> tuple[int, int, str]:
    return (0, int(part), "") if part.isdigit() else (1, 0, part)


def _pre_key(pre: tuple[str, ...]) -> tuple:
    # A version without pre-release identifiers ranks above any that has them.
    if not pre:
        return (1, ())
    return (0, tuple(_identifier_key(part) for part in pre))


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A semantic version: major.minor.patch with optional pre-release and build."""

    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def is_prerelease(self) -> bool:
        return bool(self.pre)

    def _key(self) -> tuple:
        build_key = tuple(_identifier_key(part) for part in self.build)
        return (self.major, self.minor, self.patch, _pre_key(self.pre), build_key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


def parse_version(text: str) -> Version:
    """Parse a full semantic version such as ``1.2.3-alpha.1+build``."""
    core, plus, build = text.partition("+")
    core, dash, pre = core.partition("-")
    parts = core.split(".")
    if len(parts) != 3:
        raise ValueError(f"expected major.minor.patch, got {text!r}")
    major, minor, patch = (
        _parse_number(part, name) for part, name in zip(parts, ("major", "minor", "patch"))
    )
    pre_ids = _parse_identifiers(pre, "pre-release", strict_numbers=True) if dash else ()
    build_ids = _parse_identifiers(build, "build metadata", strict_numbers=False) if plus else ()
    return Version(major, minor, patch, pre_ids, build_ids)


class Op(Enum):
    EXACT = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="
    TILDE = "~"
    CARET = "^"
    WILDCARD = "*"


@dataclass(frozen=True)
class Comparator:
    """One comparison of a requirement, e.g. ``>=1.2.0`` or ``^0.19``."""

    op: Op
    major: int
    minor: int | None = None
    patch: int | None = None
    pre: tuple[str, ...] = ()

    def matches(self, version: Version) -> bool:
        if self.op in (Op.EXACT, Op.WILDCARD):
            return self._exact(version)
        if self.op is Op.GREATER:
            return self._greater(version)
        if self.op is Op.GREATER_EQ:
            return self._exact(version) or self._greater(version)
        if self.op is Op.LESS:
            return self._less(version)
        if self.op is Op.LESS_EQ:
            return self._exact(version) or self._less(version)
        if self.op is Op.TILDE:
            return self._tilde(version)
        return self._caret(version)

    def pre_is_compatible(self, version: Version) -> bool:
        return (
            self.major == version.major
            and self.minor == version.minor
            and self.patch == version.patch
            and bool(self.pre)
        )

    def _exact(self, v: Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is not None and v.minor != self.minor:
            return False
        if self.patch is not None and v.patch != self.patch:
            return False
        return v.pre == self.pre

    def _greater(self, v: Version) -> bool:
        if v.major != self.major:
            return v.major > self.major
        if self.minor is None:
            return False
        if v.minor != self.minor:
            return v.minor > self.minor
        if self.patch is None:
            return False
        if v.patch != self.patch:
            return v.patch > self.patch
        return _pre_key(v.pre) > _pre_key(self.pre)

    def _less(self, v: Version) -> bool:
        if v.major != self.major:
            return v.major < self.major
        if self.minor is None:
            return False
        if v.minor != self.minor:
            return v.minor < self.minor
        if self.patch is None:
            return False
        if v.patch != self.patch:
            return v.patch < self.patch
        return _pre_key(v.pre) < _pre_key(self.pre)

    def _tilde(self, v: Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is not None and v.minor != self.minor:
            return False
        if self.patch is not None and v.patch != self.patch:
            return v.patch > self.patch
        return _pre_key(v.pre) >= _pre_key(self.pre)

    def _caret(self, v: Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.patch is None:
            return v.minor >= self.minor if self.major > 0 else v.minor == self.minor
        if self.major > 0:
            if v.minor != self.minor:
                return v.minor > self.minor
            if v.patch != self.patch:
                return v.patch > self.patch
        elif self.minor > 0:
            if v.minor != self.minor:
                return False
            if v.patch != self.patch:
                return v.patch > self.patch
        elif v.minor != self.minor or v.patch != self.patch:
            return False
        return _pre_key(v.pre) >= _pre_key(self.pre)

    def __str__(self) -> str:
        parts = [str(self.major)]
        for value in (self.minor, self.patch):
            if value is None:
                break
            parts.append(str(value))
        if self.op is Op.WILDCARD:
            if len(parts) < 3:
                parts.append("*")
            text = ".".join(parts)
        else:
            text = self.op.value + ".".join(parts)
        if self.pre:
            text += "-" + ".".join(self.pre)
        return text


def _parse_comparator(text: str) -> Comparator:
    text = text.strip()
    op: Op | None = None
    for symbol in _OPERATORS:
        if text.startswith(symbol):
            op = Op(symbol)
            text = text[len(symbol):].lstrip()
            break
    if not text:
        raise ValueError("missing version in requirement")

    core, plus, build = text.partition("+")
    if plus:
        _parse_identifiers(build, "build metadata", strict_numbers=False)
    core, dash, pre = core.partition("-")
    parts = core.split(".")
    if len(parts) > 3:
        raise ValueError(f"too many version components: {text!r}")

    numbers: list[int | None] = []
    wildcard = False
    for part, name in zip(parts, ("major", "minor", "patch")):
        if part in _WILDCARDS:
            wildcard = True
            numbers.append(None)
        elif wildcard:
            raise ValueError(f"unexpected number after wildcard: {text!r}")
        else:
            numbers.append(_parse_number(part, name))
    numbers.extend([None] * (3 - len(numbers)))
    major, minor, patch = numbers

    if major is None:
        raise ValueError(f"wildcard major version must stand alone: {text!r}")
    if dash and patch is None:
        raise ValueError(f"pre-release requires a full version: {text!r}")
    pre_ids = _parse_identifiers(pre, "pre-release", strict_numbers=True) if dash else ()

    if op is None:
        op = Op.WILDCARD if wildcard else Op.CARET
    elif op is Op.EXACT and wildcard:
        op = Op.WILDCARD
    return Comparator(op, major, minor, patch, pre_ids)


@dataclass(frozen=True)
class VersionReq:
    """A set of comparators that a version must all satisfy."""

    comparators: tuple[Comparator, ...] = ()

    def is_star(self) -> bool:
        return not self.comparators

    def matches(self, version: Version) -> bool:
        if not all(comparator.matches(version) for comparator in self.comparators):
            return False
        if not version.pre:
            return True
        return any(comparator.pre_is_compatible(version) for comparator in self.comparators)

    def __str__(self) -> str:
        if self.is_star():
            return "*"
        return ", ".join(str(comparator) for comparator in self.comparators)


def parse_requirement(text: str) -> VersionReq:
    """Parse a requirement such as ``0.19``, ``>=0.19.0-alpha.2`` or ``*``."""
    stripped = text.strip()
    if not stripped:
        raise ValueError("empty version requirement")
    if stripped in _WILDCARDS:
        return VersionReq()
    return VersionReq(tuple(_parse_comparator(part) for part in stripped.split(",")))


def enforce_version_with(required: VersionReq | str, actual: Version | str) -> None:
    """Raise VersionMismatchError unless ``actual`` satisfies ``required``."""
    if isinstance(required, str):
        required = parse_requirement(required)
    if isinstance(actual, str):
        actual = parse_version(actual)

    _log.debug("Enforce version - actual: %s, required: %s", actual, required)

    if required.is_star():
        # A star requirement does not match pre-releases, but they are accepted here.
        return

    outcome = required.matches(actual)
    _log.debug("Current version: %s, required version: %s, matches: %s", actual, required, outcome)
    if not outcome:
        raise VersionMismatchError(
            f"Project requires a trunk version of '{required}', "
            f"the current trunk version is: '{actual}'"
        )