"""CLI entry point for sparklab.cli module.

Enables execution via: python -m sparklab.cli
"""

from sparklab.cli.generate import main

if __name__ == "__main__":
    main()
