"""Validated tax alert models."""
