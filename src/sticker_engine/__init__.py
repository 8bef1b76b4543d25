"""Sticker Engine: batch LINE sticker generation through a chat UI."""

__version__ = "1.0.0"
