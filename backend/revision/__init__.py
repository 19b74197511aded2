"""Smart revision backend package.

This package holds the revision-priority engine and its persistent
statistics store, plus the thin FastAPI surface that exposes them.
Individual modules contain the concrete implementations and
documentation.
"""
