[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cronovm"
version = "0.4.0"
description = "Soft-float binary64 arithmetic, a boundary-tag heap allocator model and the cvm-cc build driver for CronoVM carts"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "virtual-machine",
    "compiler-driver",
    "clang",
    "llvm",
    "soft-float",
    "ieee-754",
    "allocator",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Compilers",
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
cvm-cc = "cronovm.driver:main"

[tool.hatch.build.targets.wheel]
packages = ["cronovm"]

[tool.pytest.ini_options]
addopts = "-ra"
