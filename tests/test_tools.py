import io
import os
import tarfile
from pathlib import Path

import httpx
import pytest

from trunkkit.applications import Application
from trunkkit.tools import (
    HttpClientOptions,
    ToolError,
    ToolInformation,
    cache_dir,
    download,
    find_system,
    get,
    get_info,
    install,
)


def _tar_gz(entries):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, data, mode in entries:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = mode
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def _fake_tool(directory: Path, name: str, output: str, status: int = 0) -> Path:
    script = directory / name
    script.write_text(f"#!/bin/sh\necho '{output}'\nexit {status}\n")
    script.chmod(0o755)
    return script


@pytest.fixture
def empty_path(tmp_path, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", str(bin_dir))
    return bin_dir


@pytest.fixture
def isolated_cache(tmp_path, monkeypatch):
    cache = tmp_path / "cache"
    monkeypatch.setenv("XDG_CACHE_HOME", str(cache))
    return cache


def _transport(body: bytes, requests: list, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        return httpx.Response(status, content=body)

    return httpx.MockTransport(handler)


def test_find_system_reports_version(empty_path):
    script = _fake_tool(empty_path, "wasm-bindgen", "wasm-bindgen 0.2.75")
    assert find_system(Application.WASM_BINDGEN) == (script, "0.2.75")


def test_find_system_missing_tool(empty_path):
    assert find_system(Application.WASM_OPT) is None


def test_find_system_failing_command(empty_path):
    _fake_tool(empty_path, "sass", "1.37.5", status=1)
    assert find_system(Application.SASS) is None


def test_get_info_uses_matching_system_tool(empty_path):
    script = _fake_tool(empty_path, "wasm-opt", "wasm-opt version 101")
    info = get_info(Application.WASM_OPT, "version_101", offline=True)
    assert info == ToolInformation(script, "version_101")


def test_get_info_without_version_accepts_system_tool(empty_path):
    script = _fake_tool(empty_path, "sass", "1.37.5 compiled with dart2js 2.18.4")
    assert get_info(Application.SASS) == ToolInformation(script, "1.37.5")
    assert get(Application.SASS) == script


def test_get_info_offline_mismatch(empty_path):
    _fake_tool(empty_path, "wasm-bindgen", "wasm-bindgen 0.2.75")
    with pytest.raises(ToolError) as excinfo:
        get_info(Application.WASM_BINDGEN, "0.2.74", offline=True)
    assert "found: 0.2.75" in str(excinfo.value)
    assert "offline mode" in str(excinfo.value)


def test_get_info_offline_missing(empty_path):
    with pytest.raises(ToolError) as excinfo:
        get_info(Application.TAILWIND_CSS, offline=True)
    assert "<any>" in str(excinfo.value)


def test_cache_dir_is_created(isolated_cache):
    path = cache_dir()
    assert path.is_dir()
    assert isolated_cache in path.parents


def test_download_writes_response(tmp_path):
    body = b"archive bytes"
    requests = []
    options = HttpClientOptions(transport=_transport(body, requests))
    out = download(Application.WASM_BINDGEN, "0.2.89", options, tmp_path)
    assert out == tmp_path / "wasm-bindgen-0.2.89.tmp"
    assert out.read_bytes() == body
    assert requests == [Application.WASM_BINDGEN.url("0.2.89")]


def test_download_rejects_error_status(tmp_path):
    options = HttpClientOptions(transport=_transport(b"", [], status=404))
    with pytest.raises(ToolError) as excinfo:
        download(Application.WASM_OPT, "version_116", options, tmp_path)
    assert "404" in str(excinfo.value)


def test_download_missing_root_certificate(tmp_path):
    options = HttpClientOptions(root_certificate=tmp_path / "missing.pem")
    with pytest.raises(ToolError):
        download(Application.WASM_OPT, "version_116", options, tmp_path)


def test_install_plain_binary(tmp_path):
    binary = tmp_path / "download.tmp"
    binary.write_bytes(b"\x7fELF binary")
    target = tmp_path / "out"
    result = install(Application.TAILWIND_CSS, binary, target)
    assert result == target / "tailwindcss"
    assert result.read_bytes() == b"\x7fELF binary"
    assert os.access(result, os.X_OK)


def test_install_tar_gz(tmp_path):
    archive = tmp_path / "download.tmp"
    archive.write_bytes(
        _tar_gz([("wasm-bindgen-0.2.89/wasm-bindgen", b"bindgen", 0o755)])
    )
    target = tmp_path / "out"
    result = install(Application.WASM_BINDGEN, archive, target)
    assert result.read_bytes() == b"bindgen"


def test_install_tolerates_missing_extra_files(tmp_path):
    archive = tmp_path / "download.tmp"
    archive.write_bytes(
        _tar_gz(
            [
                ("dart-sass/sass", b"sass script", 0o755),
                ("dart-sass/src/dart", b"dart", 0o755),
            ]
        )
    )
    target = tmp_path / "out"
    result = install(Application.SASS, archive, target)
    assert result.read_bytes() == b"sass script"
    assert (target / "src" / "dart").read_bytes() == b"dart"
    assert not (target / "src" / "sass.snapshot").exists()


def test_install_missing_executable(tmp_path):
    archive = tmp_path / "download.tmp"
    archive.write_bytes(_tar_gz([("wasm-bindgen-0.2.89/other", b"x", 0o755)]))
    with pytest.raises(ToolError):
        install(Application.WASM_BINDGEN, archive, tmp_path / "out")


def test_install_non_executable_binary(tmp_path):
    archive = tmp_path / "download.tmp"
    archive.write_bytes(_tar_gz([("binaryen/bin/wasm-opt", b"opt", 0o644)]))
    with pytest.raises(ToolError) as excinfo:
        install(Application.WASM_OPT, archive, tmp_path / "out")
    assert "not executable" in str(excinfo.value)


def test_get_info_downloads_and_installs_once(empty_path, isolated_cache):
    requests = []
    body = _tar_gz([("wasm-bindgen-0.2.89/wasm-bindgen", b"bindgen", 0o755)])
    options = HttpClientOptions(transport=_transport(body, requests))

    first = get_info(Application.WASM_BINDGEN, None, False, options)
    second = get_info(Application.WASM_BINDGEN, "0.2.89", False, options)

    expected = cache_dir() / "wasm-bindgen-0.2.89" / "wasm-bindgen"
    assert first == ToolInformation(expected, "0.2.89")
    assert second == first
    assert expected.read_bytes() == b"bindgen"
    assert len(requests) == 1
    assert not (cache_dir() / "wasm-bindgen-0.2.89.tmp").exists()


def test_get_info_download_failure(empty_path, isolated_cache):
    options = HttpClientOptions(transport=_transport(b"", [], status=500))
    with pytest.raises(ToolError) as excinfo:
        get_info(Application.WASM_OPT, "version_1", False, options)
    assert "failed downloading release archive" in str(excinfo.value)