"""setuptools setup for LearnLoop.

Install for development:
    pip install -e ".[test]"
"""

from setuptools import setup, find_packages

setup(
    name="LearnLoop",
    version="0.1.0",
    description="Learning-session lifecycle and timer engine for kids' learning apps",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "PyQt6>=6.4",
        "SQLAlchemy>=2.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": ["learnloop=learnloop.__main__:main"],
    },
)
