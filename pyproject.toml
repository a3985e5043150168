[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "stratumkit"
version = "0.1.0"
description = "Mock Stratum V1 and V2 mining devices, block header helpers and translator proxy configuration for exercising mining infrastructure"
requires-python = ">=3.11"
keywords = ["stratum", "mining", "bitcoin", "protocol", "testing", "traffic-generation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Software Development :: Testing :: Traffic Generation",
    "Topic :: System :: Networking",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
stratumkit-sv1-miner = "stratumkit.sv1_client:main"

[tool.hatch.build.targets.wheel]
packages = ["stratumkit"]

[tool.hatch.build.targets.sdist]
include = ["stratumkit", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
