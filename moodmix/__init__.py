"""Moodmix: a streaming music assistant with human-in-the-loop tool calls."""

__version__ = "0.1.0"
