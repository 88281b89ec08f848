"""Identifier generation."""

from cuid2 import cuid_wrapper

cuid = cuid_wrapper()


def generate_id() -> str:
    """Generate a new CUID for sessions, messages and tool calls."""
    return cuid()
