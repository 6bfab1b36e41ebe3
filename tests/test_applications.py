import pytest

from trunkkit.applications import Application, UnsupportedPlatformError


@pytest.mark.parametrize(
    "app, text, expected",
    [
        (Application.WASM_OPT, "wasm-opt version 101 (version_101)", "version_101"),
        (Application.WASM_OPT, "wasm-opt version 101", "version_101"),
        (Application.WASM_BINDGEN, "wasm-bindgen 0.2.75", "0.2.75"),
        (Application.WASM_BINDGEN, "wasm-bindgen 0.2.74 (27c7a4d06)", "0.2.74"),
        (Application.SASS, "1.37.5", "1.37.5"),
        (Application.SASS, "1.37.5 compiled with dart2js 2.18.4", "1.37.5"),
        (Application.TAILWIND_CSS, "tailwindcss v3.3.2", "3.3.2"),
    ],
)
def test_format_version_output(app, text, expected):
    assert app.format_version_output(text) == expected


def test_format_version_output_trims_whitespace():
    assert Application.SASS.format_version_output("\n  1.37.5  \n") == "1.37.5"


def test_tailwind_uses_first_non_empty_line():
    text = "\n\ntailwindcss v3.3.2\n\nUsage:\n   tailwindcss build"
    assert Application.TAILWIND_CSS.format_version_output(text) == "3.3.2"


@pytest.mark.parametrize(
    "app, text",
    [
        (Application.SASS, "   "),
        (Application.TAILWIND_CSS, "tailwindcss"),
        (Application.WASM_BINDGEN, "wasm-bindgen"),
        (Application.WASM_OPT, "wasm-opt version"),
    ],
)
def test_malformed_version_output(app, text):
    with pytest.raises(ValueError, match="missing or malformed version output"):
        app.format_version_output(text)


def test_version_test_arguments():
    assert Application.TAILWIND_CSS.version_test() == "--help"
    assert Application.SASS.version_test() == "--version"
    assert Application.WASM_BINDGEN.version_test() == "--version"
    assert Application.WASM_OPT.version_test() == "--version"


def test_default_versions():
    assert Application.SASS.default_version() == "1.69.5"
    assert Application.TAILWIND_CSS.default_version() == "3.3.5"
    assert Application.WASM_BINDGEN.default_version() == "0.2.89"
    assert Application.WASM_OPT.default_version() == "version_116"


def test_executable_paths():
    assert Application.WASM_OPT.executable_path("linux") == "bin/wasm-opt"
    assert Application.WASM_OPT.executable_path("windows") == "bin/wasm-opt.exe"
    assert Application.SASS.executable_path("windows") == "sass.bat"
    assert Application.TAILWIND_CSS.executable_path("macos") == "tailwindcss"


def test_extra_paths():
    assert Application.SASS.extra_paths("linux") == ("src/dart", "src/sass.snapshot")
    assert Application.SASS.extra_paths("windows") == ("src/dart.exe", "src/sass.snapshot")
    assert Application.WASM_OPT.extra_paths("macos") == ("lib/libbinaryen.dylib",)
    assert Application.WASM_OPT.extra_paths("linux") == ()
    assert Application.WASM_BINDGEN.extra_paths("macos") == ()


def test_sass_urls():
    assert Application.SASS.url("1.69.5", "linux", "x86_64") == (
        "https://github.com/sass/dart-sass/releases/download/1.69.5/dart-sass-1.69.5-linux-x64.tar.gz"
    )
    assert Application.SASS.url("1.69.5", "windows", "x86_64") == (
        "https://github.com/sass/dart-sass/releases/download/1.69.5/dart-sass-1.69.5-windows-x64.zip"
    )
    assert Application.SASS.url("1.69.5", "macos", "aarch64").endswith(
        "dart-sass-1.69.5-macos-arm64.tar.gz"
    )


def test_tailwind_urls():
    assert Application.TAILWIND_CSS.url("3.3.5", "linux", "aarch64") == (
        "https://github.com/tailwindlabs/tailwindcss/releases/download/v3.3.5/tailwindcss-linux-arm64"
    )
    assert Application.TAILWIND_CSS.url("3.3.5", "windows", "x86_64").endswith(
        "tailwindcss-windows-x64.exe"
    )


def test_wasm_bindgen_urls():
    assert Application.WASM_BINDGEN.url("0.2.89", "linux", "x86_64") == (
        "https://github.com/rustwasm/wasm-bindgen/releases/download/0.2.89/"
        "wasm-bindgen-0.2.89-x86_64-unknown-linux-musl.tar.gz"
    )
    assert Application.WASM_BINDGEN.url("0.2.89", "macos", "aarch64").endswith(
        "wasm-bindgen-0.2.89-aarch64-apple-darwin.tar.gz"
    )


def test_wasm_opt_urls():
    assert Application.WASM_OPT.url("version_116", "macos", "aarch64") == (
        "https://github.com/WebAssembly/binaryen/releases/download/version_116/"
        "binaryen-version_116-arm64-macos.tar.gz"
    )
    assert Application.WASM_OPT.url("version_116", "linux", "x86_64").endswith(
        "binaryen-version_116-x86_64-linux.tar.gz"
    )
    assert Application.WASM_OPT.url("version_116", "windows", "aarch64").endswith(
        "binaryen-version_116-aarch64-windows.tar.gz"
    )


@pytest.mark.parametrize(
    "app, message",
    [
        (Application.SASS, "Unable to download Sass for windows aarch64"),
        (Application.TAILWIND_CSS, "Unable to download tailwindcss for windows aarch64"),
        (Application.WASM_BINDGEN, "Unable to download wasm-bindgen for windows aarch64"),
    ],
)
def test_unsupported_combination(app, message):
    with pytest.raises(UnsupportedPlatformError, match=message):
        app.url("1.0.0", "windows", "aarch64")


def test_unknown_platform_rejected():
    with pytest.raises(UnsupportedPlatformError, match="unsupported OS"):
        Application.WASM_OPT.url("version_116", "plan9", "x86_64")
    with pytest.raises(UnsupportedPlatformError, match="unsupported target architecture"):
        Application.WASM_OPT.url("version_116", "linux", "riscv64")