[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rgbdvo"
version = "0.4.0"
description = "Feature-based RGB-D visual odometry with a local landmark map"
requires-python = ">=3.10"
keywords = ["visual odometry", "slam", "rgbd", "pnp", "orb", "computer vision"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "pyyaml",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
rgbdvo-run = "rgbdvo.run_vo:main"

[tool.hatch.build.targets.wheel]
packages = ["rgbdvo"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 120
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
