"""
Cloud Notes - short text notes with a live-update feed.

The backend keeps notes in a document store and streams the full, newest-first
collection to every connected client whenever it changes.
"""

__version__ = "1.0.0"
