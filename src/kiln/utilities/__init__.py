"""kiln.utilities - Small shared helpers."""
