[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hudmetrics"
version = "0.1.0"
description = "System metrics for a performance overlay: CPU, AMD GPU, battery and gamepad readings, plus the overlay app's message formats."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "monitoring",
    "metrics",
    "cpu",
    "amdgpu",
    "battery",
    "gamepad",
    "overlay",
    "hwmon",
    "sysfs",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hudmetrics"]

[tool.hatch.build.targets.sdist]
include = ["hudmetrics", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
