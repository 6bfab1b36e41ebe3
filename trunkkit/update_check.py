"""Check the package registry for a newer release and announce it."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Mapping

import httpx

from trunkkit.update_state import Versions, need_check, record_checked
from trunkkit.versioning import NAME, VERSION, Version, parse_version

REGISTRY_URL = "https://crates.io/api/v1/crates"
REQUEST_TIMEOUT = 1.0

_log = logging.getLogger(__name__)


def update_check(skip: bool) -> threading.Thread | None:
    """Start a background update check unless ``skip`` is set."""
    if skip:
        return None
    _log.debug("Spawning update check")
    thread = threading.Thread(target=_run_quietly, name="update-check", daemon=True)
    thread.start()
    return thread


def _run_quietly() -> None:
    try:
        perform_update_check()
    except Exception as err:  # noqa: BLE001 - a background check must never fail loudly
        _log.debug("Update check failed: %s", err)


def perform_update_check(state_path: str | Path | None = None) -> str | None:
    """Run one update check, returning the announcement if there is one."""
    _log.debug("Performing update check")
    state = need_check(state_path)
    if state.needed:
        try:
            with httpx.Client(timeout=REQUEST_TIMEOUT) as client:
                versions = most_recent(client)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as err:
            _log.debug("Failed to check for new version: %s", err)
            return None
        _log.debug("New versions: %s", versions)
        record_checked(versions, state_path)
    else:
        _log.debug("No refresh needed")
        versions = state.versions
    return announce_version(versions)


def announce_version(versions: Versions, current: Version | str | None = None) -> str | None:
    """Log and return a notice if a newer version than ``current`` is known."""
    if isinstance(current, Version):
        current_version = current
    else:
        text = VERSION if current is None else current
        try:
            current_version = parse_version(text)
        except ValueError:
            _log.debug("Failed to parse the current version (%s)", text)
            return None

    candidate = versions.prerelease if current_version.is_prerelease() else versions.release
    if candidate is None:
        return None

    _log.debug("Current: %s, Most recent: %s", current_version, candidate)
    if candidate > current_version:
        message = f"Found an update of {NAME}: {current_version} -> {candidate}"
        _log.info(message)
        return message
    return None


def select_versions(entries: Iterable[Mapping[str, Any]]) -> Versions:
    """Pick the newest release and newest version from registry entries."""
    parsed = []
    for entry in entries:
        if entry.get("yanked"):
            continue
        try:
            parsed.append(parse_version(entry["num"]))
        except (ValueError, TypeError):
            continue
    release = max((v for v in parsed if not v.is_prerelease()), default=None)
    prerelease = max(parsed, default=None)
    return Versions(release=release, prerelease=prerelease)


def most_recent(client: httpx.Client) -> Versions:
    """Ask the registry for the published versions of this package."""
    _log.debug("Checking for updates")
    response = client.get(
        f"{REGISTRY_URL}/{NAME}",
        headers={"User-Agent": f"{NAME}/{VERSION}"},
        timeout=REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    return select_versions(response.json()["versions"])