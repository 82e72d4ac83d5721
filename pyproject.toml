[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kktsolve"
version = "0.1.0"
description = "Direct and indirect solvers for quasi-definite KKT linear systems in sparse conic optimisation"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "kkt",
    "sparse",
    "linear-system",
    "ldl",
    "conjugate-gradient",
    "optimization",
    "quadratic-programming",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = [
    "pytest",
    "numpy",
]

[tool.hatch.build.targets.wheel]
packages = ["kktsolve"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
