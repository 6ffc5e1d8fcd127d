#!/usr/bin/env python
"""Setup for pyiscp module."""
from setuptools import setup


def readme():
    """Return README file as a string."""
    with open("README.rst", "r") as f:
        return f.read()


setup(
    name="pyiscp",
    version="0.1.0",
    license="MIT",
    packages=["pyiscp"],
    scripts=[],
    description="Python asyncio client for Pioneer and Onkyo eISCP receivers",
    long_description=readme(),
    long_description_content_type="text/x-rst",
    python_requires=">=3.7",
    install_requires=[],
    extras_require={"test": ["pytest"]},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    include_package_data=True,
    zip_safe=True,
    entry_points={"console_scripts": ["iscp_monitor = pyiscp.tools:monitor",]},
)
