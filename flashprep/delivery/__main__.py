"""
Entry point for running FlashPrep as a module.

Usage:
    python -m flashprep.delivery list
    python -m flashprep.delivery prep <set-id>
    python -m flashprep.delivery --help
"""
from .flashprep_cli import main

if __name__ == "__main__":
    main()
