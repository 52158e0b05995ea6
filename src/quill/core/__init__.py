"""Core conversation machinery for Quill."""
