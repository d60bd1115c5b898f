#!/usr/bin/env python
# -*- coding: utf-8 -*-
import io
import os
import re

from setuptools import setup, find_packages


classifiers = """\
    Development Status :: 4 - Beta
    Programming Language :: Python
    Programming Language :: Python :: 3
    Programming Language :: Python :: 3.9
    Programming Language :: Python :: 3.10
    Programming Language :: Python :: 3.11
"""


def _read(*parts, **kwargs):
    filepath = os.path.join(os.path.dirname(__file__), *parts)
    encoding = kwargs.pop("encoding", "utf-8")
    with io.open(filepath, encoding=encoding) as fh:
        text = fh.read()
    return text


def get_version():
    version = re.search(
        r'^__version__\s*=\s*[\'"]([^\'"]*)[\'"]',
        _read("diclust", "__init__.py"),
        re.MULTILINE,
    ).group(1)
    return version


def get_long_description():
    return _read("README.md")


def get_requirements(path):
    content = _read(path)
    return [
        req
        for req in content.split("\n")
        if req != "" and not (req.startswith("#") or req.startswith("-"))
    ]


install_requires = get_requirements("requirements.txt")


packages = find_packages(exclude=["tests", "tests.*"])


setup(
    name="diclust",
    author="diclust developers",
    version=get_version(),
    license="MIT",
    description="Clusters of differential chromatin interactions with cluster-level FDR control",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    keywords=["genomics", "bioinformatics", "Hi-C", "differential", "FDR"],
    zip_safe=False,
    classifiers=[s.strip() for s in classifiers.split("\n") if s],
    python_requires=">=3.9",
    packages=packages,
    install_requires=install_requires,
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "diclust = diclust.cli:cli",
        ]
    },
)
