"""
Entry point for running codebridge as a module: python -m codebridge
"""

from codebridge.cli.commands import app

if __name__ == "__main__":
    app()
