"""
.. include:: ../README.md
"""

__all__ = [
    "manifest",
    "classifier",
    "chart_index",
    "filters",
    "overrides",
    "version",
    "exceptions",
    "subscriber",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
