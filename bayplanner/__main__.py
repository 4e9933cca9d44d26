"""
Entry point for ``python -m bayplanner``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
