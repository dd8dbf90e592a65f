#!/usr/bin/env python

# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Setuptools installer for txconninfo.

@var _EXTRA_OPTIONS: The package names and versions used by
    C{extras_require}, kept apart so that combinations can be built without
    repeating them.
"""

import pathlib
import re

import setuptools


def getVersion(base):
    """
    Extract the version number from the package's C{_version.py} without
    importing it.

    @returns: The version number of the project, as a string like "1.0.0".
    """
    source = pathlib.Path(base, "_version.py").read_text(encoding="utf8")
    match = re.search(r'Version\(\s*"[^"]+",\s*(\d+),\s*(\d+),\s*(\d+)', source)
    return ".".join(match.groups())


STATIC_PACKAGE_METADATA = dict(
    name="txconninfo",
    version=getVersion("src/txconninfo"),
    description=(
        "Client address resolution for Twisted servers: PROXY protocol, "
        "forwarding headers and TLS peer details"
    ),
    author="Twisted Matrix Laboratories",
    author_email="twisted-python@twistedmatrix.com",
    license="MIT",
    classifiers=[
        "Framework :: Twisted",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Topic :: Internet",
    ],
)

_EXTRA_OPTIONS = dict(
    test=["pytest >= 7.0"],
    dev=["pyflakes >= 2.2", "pydoctor >= 22.0"],
)

_EXTRAS_REQUIRE = {
    "test": _EXTRA_OPTIONS["test"],
    "dev": _EXTRA_OPTIONS["dev"] + _EXTRA_OPTIONS["test"],
}


setuptools.setup(
    long_description=pathlib.Path("README.rst").read_text(encoding="utf8"),
    long_description_content_type="text/x-rst",
    package_dir={"": "src"},
    packages=setuptools.find_packages("src"),
    python_requires=">=3.8",
    install_requires=[
        "Twisted[tls] >= 22.10.0",
        "zope.interface >= 5",
        "attrs >= 21.3.0",
        "constantly >= 15.1",
        "incremental >= 21.3.0",
        "pyOpenSSL >= 21.0.0",
        "cryptography >= 3.3",
    ],
    extras_require=_EXTRAS_REQUIRE,
    entry_points={
        "console_scripts": ["txconninfo = txconninfo._inspect:run"],
    },
    **STATIC_PACKAGE_METADATA,
)
