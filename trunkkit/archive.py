"""Read single files out of downloaded release archives."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import zipfile
import zlib
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import BinaryIO, IO

_log = logging.getLogger(__name__)

PLAIN_MODE = 0o755

_READ_ERRORS = (tarfile.TarError, zipfile.BadZipFile, zlib.error, EOFError, OSError)


class ArchiveError(Exception):
    """Raised when an archive cannot be read or a file cannot be extracted."""


class ArchiveKind(Enum):
    TAR_GZ = "tar.gz"
    ZIP = "zip"
    PLAIN = "plain"


def _strip_first(name: str) -> tuple[str, ...]:
    # The first component is usually the folder the archive was created from.
    return PurePosixPath(name).parts[1:]


def _wanted(file: str) -> tuple[str, ...]:
    return PurePosixPath(file).parts


def _set_permissions(path: Path, mode: int, hint: object) -> None:
    if os.name != "posix":
        return
    _log.debug("Setting permission of '%s' to %#o", hint, mode)
    try:
        os.chmod(path, mode & 0o7777)
    except OSError as err:
        raise ArchiveError("failed setting file permissions") from err


def _write_out(reader: IO[bytes], file: str, target_directory: Path) -> Path:
    out = target_directory / file
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise ArchiveError("failed creating output directory") from err
    try:
        with open(out, "wb") as handle:
            shutil.copyfileobj(reader, handle)
    except _READ_ERRORS as err:
        raise ArchiveError("failed copying over final output file from archive") from err
    return out


class Archive:
    """A downloaded release: a gzipped tarball, a zip file, or a bare binary."""

    def __init__(self, kind: ArchiveKind, path: str | Path) -> None:
        self.kind = kind
        self.path = Path(path)
        self._file: BinaryIO | None = None
        self._tar: tarfile.TarFile | None = None
        self._zip: zipfile.ZipFile | None = None
        try:
            if kind is ArchiveKind.ZIP:
                self._zip = zipfile.ZipFile(self.path)
            else:
                self._file = open(self.path, "rb")
        except (zipfile.BadZipFile, OSError) as err:
            raise ArchiveError(f"failed opening archive {self.path}") from err

    def __enter__(self) -> Archive:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def extract_file(self, file: str, target_directory: str | Path) -> Path:
        """Extract ``file`` (path inside the archive's top folder) into ``target_directory``."""
        target = Path(target_directory)
        if self.kind is ArchiveKind.TAR_GZ:
            return self._extract_tar(file, target)
        if self.kind is ArchiveKind.ZIP:
            return self._extract_zip(file, target)
        return self._extract_plain(file, target)

    def reset(self) -> Archive:
        """Rewind the archive so that another file can be extracted."""
        if self.kind is ArchiveKind.TAR_GZ and self._file is not None:
            if self._tar is not None:
                self._tar.close()
                self._tar = None
            try:
                self._file.seek(0)
            except OSError as err:
                raise ArchiveError("error seeking to beginning of archive") from err
        return self

    def close(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None
        if self._zip is not None:
            self._zip.close()
            self._zip = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def _require_open(self) -> None:
        if self._file is None and self._zip is None:
            raise ArchiveError("archive is closed")

    def _tar_stream(self) -> tarfile.TarFile:
        self._require_open()
        if self._tar is None:
            try:
                self._tar = tarfile.open(fileobj=self._file, mode="r|gz")
            except _READ_ERRORS as err:
                raise ArchiveError("failed getting archive entries") from err
        return self._tar

    def _extract_tar(self, file: str, target: Path) -> Path:
        tar = self._tar_stream()
        wanted = _wanted(file)
        try:
            while (member := tar.next()) is not None:
                if _strip_first(member.name) != wanted:
                    continue
                reader = tar.extractfile(member)
                if reader is None:
                    raise ArchiveError(f"entry {member.name!r} is not a regular file")
                out = _write_out(reader, file, target)
                _set_permissions(out, member.mode, file)
                return out
        except ArchiveError:
            raise
        except _READ_ERRORS as err:
            raise ArchiveError("error while getting archive entry") from err
        raise ArchiveError("file not found in archive")

    def _extract_zip(self, file: str, target: Path) -> Path:
        self._require_open()
        assert self._zip is not None
        wanted = _wanted(file)
        for info in self._zip.infolist():
            name = PurePosixPath(info.filename.replace("\\", "/"))
            if name.is_absolute() or ".." in name.parts:
                raise ArchiveError(f"invalid entry path: {info.filename!r}")
            if name.parts[1:] != wanted:
                continue
            try:
                with self._zip.open(info) as reader:
                    out = _write_out(reader, file, target)
            except ArchiveError:
                raise
            except _READ_ERRORS as err:
                raise ArchiveError("error while getting archive entry") from err
            mode = info.external_attr >> 16
            if info.create_system == 3 and mode:
                _set_permissions(out, mode, file)
            return out
        raise ArchiveError("file not found in archive")

    def _extract_plain(self, file: str, target: Path) -> Path:
        self._require_open()
        assert self._file is not None
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise ArchiveError("failed to create target directory") from err
        out = target / file
        try:
            with open(out, "wb") as handle:
                shutil.copyfileobj(self._file, handle)
        except OSError as err:
            raise ArchiveError("failed to copy binary") from err
        _set_permissions(out, PLAIN_MODE, out)
        return out


def open_tar_gz(path: str | Path) -> Archive:
    """Open a gzipped tarball."""
    return Archive(ArchiveKind.TAR_GZ, path)


def open_zip(path: str | Path) -> Archive:
    """Open a zip archive."""
    return Archive(ArchiveKind.ZIP, path)


def open_plain(path: str | Path) -> Archive:
    """Open a bare downloaded binary, copied as-is on extraction."""
    return Archive(ArchiveKind.PLAIN, path)