[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fibersched"
version = "0.1.0"
description = "Cooperative fibers, named threads and a fiber-aware task scheduler"
requires-python = ">=3.10"
dependencies = []
keywords = ["fiber", "coroutine", "scheduler", "threads", "cooperative"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
fibersched-demo = "fibersched.demo:main"

[tool.hatch.build.targets.wheel]
packages = ["fibersched"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
