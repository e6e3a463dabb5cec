[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "impersonate-service"
version = "1.0.0"
description = "HTTP service that performs requests through curl-impersonate wrapper scripts with browser TLS and HTTP fingerprints"
requires-python = ">=3.10"
keywords = ["curl", "impersonate", "http", "browser", "fingerprint", "wsgi", "werkzeug"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]
dependencies = [
    "werkzeug",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
impersonate-service = "impersonate_service.server:main"

[tool.hatch.build.targets.wheel]
packages = ["impersonate_service"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
