"""Command-line interface."""

from .__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL, main

__all__ = ["EXIT_FATAL", "EXIT_PARTIAL_FAILURE", "EXIT_SUCCESS_ALL", "main"]
