"""Streaming tool-call orchestration."""
