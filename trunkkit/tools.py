"""Locate external tools and download them into the cache when they are missing."""

from __future__ import annotations

import logging
import os
import shutil
import ssl
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

import httpx
import platformdirs

from trunkkit.applications import Application, current_os
from trunkkit.archive import Archive, ArchiveError, open_plain, open_tar_gz, open_zip
from trunkkit.versioning import NAME

_log = logging.getLogger(__name__)


class ToolError(Exception):
    """Raised when a tool cannot be located, downloaded or installed."""


@dataclass(frozen=True)
class HttpClientOptions:
    """How the HTTP client used for downloads is set up.

    ``root_certificate`` adds a PEM root certificate to the trusted set, which helps
    behind proxies with self-signed roots. ``accept_invalid_certificates`` disables
    certificate checks altogether and is unsafe. The last field, when given,
    overrides how the client sends its requests.
    """

    root_certificate: Path | None = None
    accept_invalid_certificates: bool = False
    transport: httpx.BaseTransport | None = None


@dataclass(frozen=True)
class ToolInformation:
    """Where a tool's binary lives and which version it is."""

    path: Path
    version: str


class _AppCache:
    """Remembers which tools were installed during this run, to install each only once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._installed: set[tuple[Application, str]] = set()

    def install_once(
        self,
        app: Application,
        version: str,
        app_dir: Path,
        client_options: HttpClientOptions,
    ) -> None:
        with self._lock:
            key = (app, version)
            if key in self._installed:
                return
            try:
                archive_path = download(app, version, client_options)
            except ToolError as err:
                raise ToolError("failed downloading release archive") from err
            install(app, archive_path, app_dir)
            try:
                archive_path.unlink()
            except OSError as err:
                raise ToolError("failed deleting temporary archive") from err
            self._installed.add(key)


_GLOBAL_APP_CACHE = _AppCache()


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def cache_dir() -> Path:
    """The cache directory for downloaded tools, created if missing."""
    path = Path(platformdirs.user_cache_dir(NAME, appauthor=False))
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise ToolError("failed creating cache directory") from err
    return path


def find_system(app: Application) -> tuple[Path, str] | None:
    """Find a system-wide installation of ``app`` and its version, if any."""
    found = shutil.which(app.value)
    if found is None:
        _log.debug("failed to detect system tool: %s not found", app.value)
        return None
    path = Path(found)
    try:
        output = subprocess.run(
            [str(path), app.version_test()], capture_output=True, check=False
        )
    except OSError as err:
        _log.debug("failed to detect system tool: %s", err)
        return None
    if output.returncode != 0:
        _log.debug("running command `%s %s` failed", path, app.version_test())
        return None
    text = output.stdout.decode("utf-8", errors="replace")
    try:
        version = app.format_version_output(text)
    except ValueError as err:
        _log.debug("failed to detect system tool: %s", err)
        return None
    _log.debug("system version found for %s: %s", app.value, version)
    return path, version


def _http_client(options: HttpClientOptions) -> httpx.Client:
    verify: bool | ssl.SSLContext = not options.accept_invalid_certificates
    if options.root_certificate is not None:
        try:
            pem = Path(options.root_certificate).read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError) as err:
            raise ToolError(
                f"Error reading certificate {options.root_certificate}"
            ) from err
        context = ssl.create_default_context()
        try:
            context.load_verify_locations(cadata=pem)
        except ssl.SSLError as err:
            raise ToolError("Error adding root certificate") from err
        if options.accept_invalid_certificates:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        verify = context
    return httpx.Client(
        verify=verify, transport=options.transport, follow_redirects=True
    )


def download(
    app: Application,
    version: str,
    client_options: HttpClientOptions | None = None,
    directory: str | Path | None = None,
) -> Path:
    """Download the release of ``app`` into a temporary file and return its path."""
    options = client_options or HttpClientOptions()
    _log.info("downloading %s %s", app.value, version)
    if options.accept_invalid_certificates:
        _log.warning(
            "Accept Invalid Certificates is set to true. This can open you up to MITM attacks."
        )

    target = Path(directory) if directory is not None else cache_dir()
    temp_out = target / f"{app.value}-{version}.tmp"
    url = app.url(version)
    client = _http_client(options)
    try:
        handle = open(temp_out, "wb")
    except OSError as err:
        client.close()
        raise ToolError("failed creating temporary output file") from err

    with client, handle:
        try:
            with client.stream("GET", url) as response:
                if not response.is_success:
                    raise ToolError(
                        f"error downloading archive file: {response.status_code}\n{url}"
                    )
                for chunk in response.iter_bytes():
                    handle.write(chunk)
        except httpx.HTTPError as err:
            raise ToolError("error sending HTTP request") from err
    return temp_out


def _open_archive(app: Application, archive_path: Path) -> Archive:
    if app is Application.SASS and current_os() == "windows":
        return open_zip(archive_path)
    if app is Application.TAILWIND_CSS:
        return open_plain(archive_path)
    return open_tar_gz(archive_path)


def install(
    app: Application, archive_path: str | Path, target_directory: str | Path
) -> Path:
    """Extract ``app`` and the files it needs into ``target_directory``."""
    _log.info("installing %s", app.value)
    target = Path(target_directory)
    try:
        with _open_archive(app, Path(archive_path)) as archive:
            archive.extract_file(app.executable_path(), target)
            for extra in app.extra_paths():
                archive.reset()
                try:
                    archive.extract_file(extra, target)
                except ArchiveError:
                    _log.warning(
                        "attempted to extract '%s' from %s archive, but it is not present, "
                        "this could be due to version updates",
                        extra,
                        app.value,
                    )
    except ArchiveError as err:
        raise ToolError("Could not extract files") from err

    main_executable = target / app.executable_path()
    if not main_executable.exists():
        raise ToolError(f"Extracted application binary {main_executable} could not be found.")
    if not main_executable.is_file():
        raise ToolError(f"Extracted application binary {main_executable} is not a file")
    if not _is_executable(main_executable):
        raise ToolError(f"Extracted application binary {main_executable} is not executable.")
    return main_executable


def get_info(
    app: Application,
    version: str | None = None,
    offline: bool = False,
    client_options: HttpClientOptions | None = None,
) -> ToolInformation:
    """Locate ``app``, downloading it if needed, and report its path and version."""
    options = client_options or HttpClientOptions()
    _log.debug("Getting tool %s", app.value)

    system = find_system(app)
    if system is not None:
        path, detected = system
        if version is None:
            return ToolInformation(path, detected)
        if version == detected:
            _log.debug("using system installed binary: %s (%s)", path, detected)
            return ToolInformation(path, detected)
        if offline:
            raise ToolError(
                f"couldn't find the required version ({version}) of the application "
                f"{app.value} (found: {detected}), unable to download in offline mode"
            )
        _log.debug("tool version mismatch (required: %s, system: %s)", version, detected)

    if offline:
        raise ToolError(
            f"couldn't find application {app.value} (version: {version or '<any>'}), "
            "unable to download in offline mode"
        )

    chosen = version or app.default_version()
    app_dir = cache_dir() / f"{app.value}-{chosen}"
    bin_path = app_dir / app.executable_path()
    if not _is_executable(bin_path):
        _GLOBAL_APP_CACHE.install_once(app, chosen, app_dir, options)

    _log.debug("Using %s (%s) from: %s", app.value, chosen, bin_path)
    return ToolInformation(bin_path, chosen)


def get(
    app: Application,
    version: str | None = None,
    offline: bool = False,
    client_options: HttpClientOptions | None = None,
) -> Path:
    """Locate ``app``, downloading it if needed, and return the path of its binary."""
    return get_info(app, version, offline, client_options).path