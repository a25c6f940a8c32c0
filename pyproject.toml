[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "watchvuln"
version = "1.7.0"
description = "Crawl vulnerability feeds, render push messages and receive webhook deliveries"
requires-python = ">=3.10"
keywords = [
    "vulnerability",
    "security",
    "cve",
    "crawler",
    "kev",
    "webhook",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Information Technology",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
]
dependencies = [
    "requests",
    "beautifulsoup4",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
watchvuln-webhook = "watchvuln.webhook_server:main"

[tool.hatch.build.targets.wheel]
packages = ["watchvuln"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
