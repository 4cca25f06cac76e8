"""Worker control API."""
