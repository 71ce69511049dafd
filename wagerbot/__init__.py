"""Wagerbot: autonomous dice wager agent for chat-brokered tickets."""

__version__ = "0.1.0"
__author__ = "Wagerbot Team"

__all__ = ["__version__", "__author__"]
