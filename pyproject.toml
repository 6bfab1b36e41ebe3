[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "trunkkit"
version = "0.1.0"
description = "Tool management, file watching, live-reload messaging and version checks for a web application build pipeline"
requires-python = ">=3.10"
keywords = ["build", "wasm", "tooling", "watcher", "live-reload", "sass", "tailwindcss", "semver"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Build Tools",
]
dependencies = [
    "httpx",
    "platformdirs",
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["trunkkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
