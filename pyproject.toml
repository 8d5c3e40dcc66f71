[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "purity"
version = "0.1.0"
description = "Length-prefixed binary packet protocol with an asyncio TCP server and reconnecting client"
requires-python = ">=3.10"
dependencies = []
keywords = ["networking", "tcp", "asyncio", "protocol", "packets", "binary"]
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
    "Framework :: AsyncIO",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
purity-server = "purity.server:main"
purity-client = "purity.client:main"

[tool.hatch.build.targets.wheel]
packages = ["purity"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
