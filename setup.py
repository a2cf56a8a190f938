#!/usr/bin/env python3
"""Setup script for taskgate."""
from setuptools import setup, find_packages

setup(
    name="taskgate",
    version="0.1.0",
    description="Session-aware MCP gateway exposing task management tools to AI agents",
    author="taskgate Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "flask[async]>=2.0.0",
        "flask-cors>=3.0.10",
        "pyyaml>=5.4",
    ],
    extras_require={
        "test": [
            "pytest>=6.2.5",
        ],
    },
    entry_points={
        "console_scripts": [
            "taskgate=taskgate.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
