"""Quill CLI entry point."""

from quill.cli.app import main

if __name__ == "__main__":
    main()
