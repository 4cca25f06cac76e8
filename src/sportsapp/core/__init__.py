"""Core: logging and the exception hierarchy."""
