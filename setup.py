#!/usr/bin/env python
from setuptools import setup, find_packages
from os import path
import sys

min_py_version = (3, 10)

if sys.version_info < min_py_version:
    sys.exit(
        "pgrecord is only supported for Python {}.{} or higher".format(*min_py_version)
    )

here = path.abspath(path.dirname(__file__))

long_description = (
    "Metadata-driven mapping of Python dataclasses onto PostgreSQL tables."
)

# read in version number into __version__
with open(path.join(here, "pgrecord", "version.py")) as f:
    exec(f.read())

with open(path.join(here, "requirements.txt")) as f:
    requirements = [line.split("#", 1)[0].rstrip() for line in f.readlines()]
    requirements = [line for line in requirements if line]

setup(
    name="pgrecord",
    version=__version__,
    description="A dataclass-to-PostgreSQL record mapper.",
    long_description=long_description,
    author="pgrecord contributors",
    license="MIT",
    keywords=[
        "database",
        "postgresql",
        "orm",
        "dataclasses",
    ],
    packages=find_packages(exclude=["contrib", "docs", "tests*"]),
    install_requires=requirements,
    extras_require={"test": ["pytest"]},
    python_requires=">={}.{}".format(*min_py_version),
)
