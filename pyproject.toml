[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "spanz"
version = "0.1.0"
description = "In-process span aggregation with a tracez JSON API, plus event-style log and metrics exporters"
requires-python = ">=3.10"
keywords = ["tracing", "spans", "zpages", "tracez", "telemetry", "metrics", "logs", "user_events"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Logging",
]
dependencies = [
    "aiohttp",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
spanz-server = "spanz.server:main"

[tool.hatch.build.targets.wheel]
packages = ["spanz"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
