[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ptxgen"
version = "0.1.0"
description = "Lower textual LLVM IR to NVIDIA PTX assembly"
requires-python = ">=3.10"
dependencies = []
keywords = ["llvm", "ptx", "cuda", "compiler", "gpu", "codegen"]
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
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ptx-backend = "ptxgen.cli:main"
llvm2ptx = "ptxgen.cli:dump_main"
llvm-parser = "ptxgen.cli:json_main"

[tool.hatch.build.targets.wheel]
packages = ["ptxgen"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
