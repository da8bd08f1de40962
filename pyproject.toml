[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "phrasedrill"
version = "0.1.0"
description = "HTTP API for practising foreign-language phrases, with user accounts, token auth and cached lookups"
requires-python = ">=3.10"
keywords = ["language learning", "vocabulary", "flashcards", "rest api", "flask", "mongodb", "redis"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Education",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "flask>=2.3",
    "pymongo>=4.2",
    "redis>=4.5",
    "pyjwt>=2.6",
    "pyyaml>=6.0",
    "python-dotenv>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[project.scripts]
phrasedrill = "phrasedrill.server:main"

[tool.hatch.build.targets.wheel]
packages = ["phrasedrill"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]
