[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tallymetrics"
version = "3.4.2"
description = "Buffered, hierarchical metrics: scoped counters, gauges, timers and histograms with pluggable reporters"
requires-python = ">=3.10"
dependencies = []
keywords = ["metrics", "monitoring", "statsd", "histogram", "counters", "gauges", "timers"]
classifiers = [
    "Development Status :: 5 - Production/Stable",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tallymetrics"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
