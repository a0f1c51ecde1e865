"""Package metadata and console entry point for linkgraph."""

from setuptools import find_packages, setup

setup(
    name="linkgraph",
    version="0.1.0",
    description="Persistent backlink index over a corpus of linked text documents",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "click>=8.1",
        "inotify_simple>=1.3; sys_platform == 'linux'",
    ],
    extras_require={
        "test": ["pytest>=8.0"],
    },
    entry_points={
        "console_scripts": ["lg = linkgraph.cli:main"],
    },
)
