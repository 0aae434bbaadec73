[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "megatex"
version = "0.1.0"
description = "Megatexture tile streaming, view culling and level-of-detail selection, with collision, skeletal animation and allocator helpers"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "megatexture",
    "virtual texture",
    "tile cache",
    "frustum culling",
    "level of detail",
    "skeletal animation",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Multimedia :: Graphics :: 3D Rendering",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["megatex"]

[tool.pytest.ini_options]
addopts = "-ra"
