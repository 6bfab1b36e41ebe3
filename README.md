# trunkkit

Building blocks for a web application build pipeline. It covers external tools,
file watching, live-reload messages and version checks.

## Installation

```
pip install trunkkit
```

To run the test suite:

```
pip install "trunkkit[test]"
pytest
```

## What is in the package

### External tools: `trunkkit.applications`, `trunkkit.archive`, `trunkkit.tools`

`Application` lists four tools: `SASS`, `TAILWIND_CSS`, `WASM_BINDGEN` and `WASM_OPT`.
For each tool it knows these things:

- `executable_path()`: where the executable sits inside the release archive.
- `extra_paths()`: which other archive files the executable needs.
- `default_version()`: the version used when none is requested.
- `url()`: the download URL for an operating system (`windows`, `macos`, `linux`) and an
  architecture (`x86_64`, `aarch64`).
- `version_test()` and `format_version_output()`: how to read the tool's own version output.

`current_os()` and `current_arch()` report the platform the package is running on. On any
other platform they raise `UnsupportedPlatformError`, and so does `url()` when a tool has no
release for that platform.

`trunkkit.tools` puts these pieces together:

- `find_system(app)` looks for the tool on `PATH` and runs its version test. It returns
  `(path, version)`, or `None` when the tool is not found or its output cannot be read.
- `get_info(app, version, offline, client_options)` returns a `ToolInformation`, with
  `path` and `version`, and downloads the tool when needed. It uses the system binary when
  no version is requested or the versions match. Otherwise it downloads the release into
  `cache_dir()` and installs it there. In a single run each tool and version is
  installed only once.
- `get(...)` returns only the path.
- In offline mode a missing tool, or a system tool with the wrong version, raises
  `ToolError`.
- `download()` and `install()` are also available on their own.
- `HttpClientOptions` sets how downloads are made:
  - `root_certificate` adds a PEM root certificate to the trusted set.
  - `accept_invalid_certificates` turns certificate checks off, which is unsafe.
  - `transport` supplies an `httpx` transport.

`trunkkit.archive` extracts single files from a release:

- `open_tar_gz`, `open_zip` and `open_plain` each return an `Archive`. `open_plain` is for a
  bare binary.
- An `Archive` is a context manager. Its methods are `extract_file(file, target_directory)`,
  `reset()` and `close()`.
- The first path component of each archive entry is ignored when files are matched.
- Extracted files keep their recorded Unix permissions. Plain binaries get mode `0o755`.
- Any failure raises `ArchiveError`.

```python
from trunkkit.applications import Application
from trunkkit.tools import get_info

info = get_info(Application.WASM_BINDGEN)
print(info.path, info.version)

Application.WASM_OPT.format_version_output("wasm-opt version 101")  # "version_101"
```

### File watching: `trunkkit.watch`

`WatchSystem` watches a set of paths with `watchdog`. If `poll` is set to an interval in
seconds, it polls instead. It rebuilds by calling an async `build` callable that you
supply.

Events are handled as follows:

- Events are debounced for 25 ms.
- These kinds of event are ignored (see `EventKind`): access, plain metadata, and other.
- A path is ignored when it lies under one of `ignored_paths`. `update_ignore_list()`
  adds to that list.
- A path is ignored when any of its segments is on the blacklist (`.git`, `.DS_Store`).
  `is_blacklisted()` runs this check on its own.

Builds are controlled as follows:

- A build never overlaps another build.
- Changes that arrive while a build is running are collected, and trigger one more build
  when it finishes.
- For one second after a build finishes, changes are ignored. Pass `enable_cooldown=False`
  to turn this off.
- `clear_screen=True` clears the terminal before each build.
- Each finished build's `BuildState` is passed to the `ws_state` callback, if one is given.
  With `no_error_reporting=True`, failures are not passed on.
- `build_error_reason()` formats an exception together with its chain of causes.

```python
import asyncio
from trunkkit.watch import WatchSystem

async def build():
    ...  # run the build, raise on failure

async def main():
    shutdown = asyncio.Event()
    system = WatchSystem(build, ["src"], ignored_paths=["dist"])
    await system.build()
    await system.run(shutdown)  # runs until shutdown.set()

asyncio.run(main())
```

### Live reload: `trunkkit.ws`

`ClientMessage` is the JSON message sent to the browser. There are two kinds:

- `ClientMessage.reload()` serialises to `{"type":"reload"}`.
- `ClientMessage.build_failure(reason)` serialises to
  `{"type":"buildFailure","data":{"reason":...}}`.

`to_json()` and `from_json()` convert a message to and from this form.

`BuildState.ok()` and `BuildState.failed(reason)` describe the latest build.

`ReloadNotifier.message_for(state)` turns a state into a message. It drops the first
successful state, so that a fresh connection does not reload at once.

`handle_ws(ws, states)` serves one connection. Its arguments are:

- `ws`: an object with ASGI-style `recv()`, `send()` and `close()` coroutines.
- `states`: an async iterable of `BuildState`.

It runs until the browser disconnects or the states run out.

### Version checks: `trunkkit.versioning`, `trunkkit.update_state`, `trunkkit.update_check`

`trunkkit.versioning` parses semantic versions and version requirements:

- `parse_version()` returns a `Version`. `parse_requirement()` returns a `VersionReq`.
- Requirements use `=`, `>`, `>=`, `<`, `<=`, `~`, `^`, or wildcards. Commas join several
  comparators. A bare version counts as a caret requirement.
- Pre-release versions match only comparators that name a pre-release of the same
  `major.minor.patch`.
- `enforce_version_with(required, actual)` accepts strings or parsed values. It raises
  `VersionMismatchError` when the requirement is not met. `*` accepts every version,
  pre-releases included.

```python
from trunkkit.versioning import enforce_version_with

enforce_version_with(">=0.19.0", "0.19.1")    # passes
enforce_version_with("0.20.0", "0.19.0")      # raises VersionMismatchError
```

`trunkkit.update_state` keeps a small JSON file, `update.json` in the user state
directory, that records when the last check ran:

- `state_file()` returns the path of that file.
- `need_check(path)` returns a `CheckState`. A check is due if the file is missing,
  unreadable as JSON, or more than a day old.
- `record_checked(versions, path)` writes the file. Errors are logged and ignored.
- `Versions` holds the newest release and the newest version including pre-releases.

`trunkkit.update_check` looks for newer versions:

- `update_check(skip)` starts a check in a daemon thread.
- `perform_update_check(state_path)` runs one check. It asks the package registry through
  `most_recent(client)` only when a check is due.
- `select_versions(entries)` skips yanked and unparsable entries.
- `announce_version(versions, current)` logs a notice and returns it when a newer version
  is known. A pre-release is compared with the newest pre-release, a release with the
  newest release.

The package calls itself `trunk` at version `0.1.0` for these checks and for its cache
and state directories.

## What the package does not do

- There is no command-line program. Everything here is a library called from your own code.
- It does not compile or bundle anything. `WatchSystem` calls the build you provide.
- It has no HTTP server. `handle_ws` needs a websocket object from your server framework,
  and the feed of build states must be connected by you. For example, connect the
  `ws_state` callback of `WatchSystem` to the iterable passed to `handle_ws`.
- It does not read project configuration files. Paths, options and version requirements
  are passed in directly.