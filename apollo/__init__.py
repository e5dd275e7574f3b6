"""
Apollo: agent-driven curriculum research.

Drives an external research agent through four passes, assembles the
file-per-lesson output it writes, and ingests the result into the
curriculum catalog.
"""

__version__ = "1.0.0"
