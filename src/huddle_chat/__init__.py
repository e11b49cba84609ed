"""Huddle chat: encrypted conversations with optimistic delivery."""

__version__ = "0.1.0"
