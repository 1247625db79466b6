"""
Main entry point for `python -m agent_toolkit`.
"""

from .cli import main

if __name__ == "__main__":
    main()
