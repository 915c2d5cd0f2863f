"""Adapters for the external code-execution service."""

from .judge0 import Judge0Client, LANGUAGE_IDS, STATUS_ACCEPTED, language_id  # noqa: F401
