"""Document text extraction."""
