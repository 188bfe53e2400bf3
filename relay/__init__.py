"""Relay: a tool-augmented conversational agent service."""

__version__ = "0.1.0"
