"""
Setup script for flashprep.

FlashPrep is a terminal flashcard companion with adaptive test-prep:
cards you rate poorly or have never reviewed come up earlier, and every
session feeds a per-set mastery report.

The 'flashprep' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="flashprep",
    version="1.0.0",
    description="Terminal flashcards with adaptive test-prep and mastery statistics",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*")),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "flashprep=flashprep.delivery.flashprep_cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="flashcards study test-prep cli education",
)
