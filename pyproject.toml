[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gamebase"
version = "0.1.0"
description = "Building blocks for a gaming community message board: response codes, post ranking, seed-article crawling and retrieval-augmented chat helpers."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "message-board",
    "forum",
    "community",
    "ranking",
    "rag",
    "retrieval",
    "crawler",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: Message Boards",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
gamebase-tft-crawler = "gamebase.crawler:main"

[tool.hatch.build.targets.wheel]
packages = ["gamebase"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
