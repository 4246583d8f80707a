"""Failure telemetry."""
