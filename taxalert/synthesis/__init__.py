"""Model prompting, clients and response normalization."""
