"""Persistent record of when the last update check was done and what it found."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Mapping

import platformdirs

from trunkkit.versioning import NAME, Version, parse_version

CHECK_PERIOD = timedelta(days=1)

_log = logging.getLogger(__name__)


def state_file() -> Path:
    """Path of the file that records update checks."""
    return Path(platformdirs.user_state_dir(NAME, appauthor=False)) / "update.json"


@dataclass(frozen=True)
class Versions:
    """The most recent release and the most recent version including pre-releases."""

    release: Version | None = None
    prerelease: Version | None = None

    def to_dict(self) -> dict[str, str]:
        data = {}
        if self.release is not None:
            data["release"] = str(self.release)
        if self.prerelease is not None:
            data["prerelease"] = str(self.prerelease)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Versions:
        if not isinstance(data, Mapping):
            raise TypeError("versions must be an object")

        def _field(name: str) -> Version | None:
            value = data.get(name)
            if value is None:
                return None
            if not isinstance(value, str):
                raise TypeError(f"{name} must be a string")
            return parse_version(value)

        return cls(release=_field("release"), prerelease=_field("prerelease"))


@dataclass(frozen=True)
class CheckState:
    """Whether a check against the registry is due, and the versions known otherwise."""

    needed: bool
    versions: Versions = field(default_factory=Versions)


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError("last_check must be a string")
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    stamp = datetime.fromisoformat(value)
    if stamp.tzinfo is None:
        raise ValueError("last_check lacks a UTC offset")
    return stamp


def _decode(raw: bytes) -> tuple[datetime, Versions]:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise TypeError("state must be an object")
    return _parse_timestamp(data["last_check"]), Versions.from_dict(data["versions"])


def need_check(path: str | Path | None = None) -> CheckState:
    """Decide whether an update check is due. Unreadable state means no check."""
    file = Path(path) if path is not None else state_file()
    try:
        raw = file.read_bytes()
    except FileNotFoundError:
        return CheckState(needed=True)
    except OSError as err:
        _log.debug("Failed to check update state file (%s), skipping: %s", file, err)
        return CheckState(needed=False)

    try:
        last_check, versions = _decode(raw)
    except (ValueError, TypeError, KeyError):
        # An unreadable file is re-written after a fresh check.
        return CheckState(needed=True)

    diff = datetime.now(timezone.utc) - last_check
    _log.debug("Time since last check: %s", diff)
    if diff > CHECK_PERIOD:
        return CheckState(needed=True)
    return CheckState(needed=False, versions=versions)


def record_checked(versions: Versions, path: str | Path | None = None) -> None:
    """Record that a check was done now. Errors are logged and ignored."""
    file = Path(path) if path is not None else state_file()
    payload = json.dumps(
        {
            "last_check": datetime.now(timezone.utc).isoformat(),
            "versions": versions.to_dict(),
        }
    )
    try:
        file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        _log.debug("Failed to create parent directory for update state (%s): %s", file.parent, err)
        return
    try:
        file.write_text(payload, encoding="utf-8")
    except OSError as err:
        _log.debug("Failed to write update state file (%s): %s", file, err)