"""Quill - a tool-calling chat front-end for editing files."""

__version__ = "0.1.0"
