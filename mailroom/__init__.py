"""Conversation inbox core: aggregation, pagination, search, threading and state changes."""

__version__ = "0.1.0"
