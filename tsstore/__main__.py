"""
Entry point for running tsstore as a module.

Usage: python -m tsstore [command] [options]
"""

from tsstore.cli.parser import main

if __name__ == "__main__":
    main()
