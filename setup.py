##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##


import pathlib
from setuptools import setup

# The directory containing this file
HERE = pathlib.Path(__file__).parent

# The text of the README file
README = (HERE / "README.md").read_text()

# This call to setup() does all the work
setup(
    name="oslcclient",
    version="0.1.0",
    description="Python OSLC client: service discovery, OSLC query, resource CRUD and incoming link discovery",
    long_description=README,
    long_description_content_type="text/markdown",
    license="MIT",
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    packages=["oslcclient", "oslcclient.examples"],
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=['CacheControl', "cryptography", 'filelock', 'lxml', 'rdflib', "requests", 'tqdm', 'urllib3'],
    extras_require={
        "test": ["pytest", "httpretty"],
    },
    entry_points={
        "console_scripts": [
            "oslcquery=oslcclient.examples.oslcquery:main",
            "incominglinks=oslcclient.examples.incominglinks:main",
        ]
    },
)
