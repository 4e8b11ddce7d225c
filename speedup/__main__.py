"""CLI entry point for python -m speedup"""
from speedup.cli.commands import app

if __name__ == "__main__":
    app()
