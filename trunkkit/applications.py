"""The external tools used in the build pipeline and where to get them."""

from __future__ import annotations

import platform
import sys
from enum import Enum

_OPERATING_SYSTEMS = ("windows", "macos", "linux")
_ARCHITECTURES = ("x86_64", "aarch64")


class UnsupportedPlatformError(Exception):
    """Raised when a tool has no release for the operating system or architecture."""


def current_os() -> str:
    """The running operating system as ``windows``, ``macos`` or ``linux``."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("linux"):
        return "linux"
    raise UnsupportedPlatformError("unsupported OS")


def current_arch() -> str:
    """The running CPU architecture as ``x86_64`` or ``aarch64``."""
    machine = platform.machine().lower()
    if machine in ("x86_64", "amd64"):
        return "x86_64"
    if machine in ("aarch64", "arm64"):
        return "aarch64"
    raise UnsupportedPlatformError("unsupported target architecture")


def _malformed(text: str) -> ValueError:
    return ValueError(f"missing or malformed version output: {text}")


class Application(Enum):
    """A tool to locate and, if needed, download. The value is its executable's base name."""

    SASS = "sass"
    TAILWIND_CSS = "tailwindcss"
    WASM_BINDGEN = "wasm-bindgen"
    WASM_OPT = "wasm-opt"

    def executable_path(self, target_os: str | None = None) -> str:
        """Path of the executable within the downloaded archive."""
        target_os = target_os or current_os()
        if target_os == "windows":
            return {
                Application.SASS: "sass.bat",
                Application.TAILWIND_CSS: "tailwindcss.exe",
                Application.WASM_BINDGEN: "wasm-bindgen.exe",
                Application.WASM_OPT: "bin/wasm-opt.exe",
            }[self]
        return {
            Application.SASS: "sass",
            Application.TAILWIND_CSS: "tailwindcss",
            Application.WASM_BINDGEN: "wasm-bindgen",
            Application.WASM_OPT: "bin/wasm-opt",
        }[self]

    def extra_paths(self, target_os: str | None = None) -> tuple[str, ...]:
        """Other files from the archive that the executable needs to run."""
        target_os = target_os or current_os()
        if self is Application.SASS:
            dart = "src/dart.exe" if target_os == "windows" else "src/dart"
            return (dart, "src/sass.snapshot")
        if self is Application.WASM_OPT and target_os == "macos":
            return ("lib/libbinaryen.dylib",)
        return ()

    def default_version(self) -> str:
        """Version used when none is requested."""
        return {
            Application.SASS: "1.69.5",
            Application.TAILWIND_CSS: "3.3.5",
            Application.WASM_BINDGEN: "0.2.89",
            Application.WASM_OPT: "version_116",
        }[self]

    def url(
        self, version: str, target_os: str | None = None, target_arch: str | None = None
    ) -> str:
        """Direct download URL of the release for the given platform."""
        target_os = target_os or current_os()
        target_arch = target_arch or current_arch()
        if target_os not in _OPERATING_SYSTEMS:
            raise UnsupportedPlatformError("unsupported OS")
        if target_arch not in _ARCHITECTURES:
            raise UnsupportedPlatformError("unsupported target architecture")
        unix = target_os in ("macos", "linux")

        if self is Application.SASS:
            base = f"https://github.com/sass/dart-sass/releases/download/{version}/dart-sass-{version}"
            if target_os == "windows" and target_arch == "x86_64":
                return f"{base}-windows-x64.zip"
            if unix:
                arch = "x64" if target_arch == "x86_64" else "arm64"
                return f"{base}-{target_os}-{arch}.tar.gz"
            raise UnsupportedPlatformError(f"Unable to download Sass for {target_os} {target_arch}")

        if self is Application.TAILWIND_CSS:
            base = f"https://github.com/tailwindlabs/tailwindcss/releases/download/v{version}/tailwindcss"
            if target_os == "windows" and target_arch == "x86_64":
                return f"{base}-windows-x64.exe"
            if unix:
                arch = "x64" if target_arch == "x86_64" else "arm64"
                return f"{base}-{target_os}-{arch}"
            raise UnsupportedPlatformError(
                f"Unable to download tailwindcss for {target_os} {target_arch}"
            )

        if self is Application.WASM_BINDGEN:
            triples = {
                ("windows", "x86_64"): "x86_64-pc-windows-msvc",
                ("macos", "x86_64"): "x86_64-apple-darwin",
                ("macos", "aarch64"): "aarch64-apple-darwin",
                ("linux", "x86_64"): "x86_64-unknown-linux-musl",
                ("linux", "aarch64"): "aarch64-unknown-linux-gnu",
            }
            triple = triples.get((target_os, target_arch))
            if triple is None:
                raise UnsupportedPlatformError(
                    f"Unable to download wasm-bindgen for {target_os} {target_arch}"
                )
            return (
                f"https://github.com/rustwasm/wasm-bindgen/releases/download/{version}/"
                f"wasm-bindgen-{version}-{triple}.tar.gz"
            )

        base = f"https://github.com/WebAssembly/binaryen/releases/download/{version}/binaryen-{version}"
        if (target_os, target_arch) == ("macos", "aarch64"):
            return f"{base}-arm64-macos.tar.gz"
        return f"{base}-{target_arch}-{target_os}.tar.gz"

    def version_test(self) -> str:
        """The argument that makes the tool print its version."""
        return "--help" if self is Application.TAILWIND_CSS else "--version"

    def format_version_output(self, text: str) -> str:
        """Extract the version from the output of running ``version_test``."""
        text = text.strip()
        if self is Application.SASS:
            words = text.split()
            if not words:
                raise _malformed(text)
            return words[0]
        if self is Application.TAILWIND_CSS:
            line = next((line for line in text.splitlines() if line), None)
            if line is None:
                raise _malformed(text)
            parts = line.split(" v")
            if len(parts) < 2:
                raise _malformed(text)
            return parts[1]
        parts = text.split(" ")
        if self is Application.WASM_BINDGEN:
            if len(parts) < 2:
                raise _malformed(text)
            return parts[1]
        if len(parts) < 3:
            raise _malformed(text)
        return f"version_{parts[2]}"