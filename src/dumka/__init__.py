"""Dumka - voice assistant that keeps notes and answers questions about its own history."""

__version__ = "0.1.0"
