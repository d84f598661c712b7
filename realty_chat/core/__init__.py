"""Process-wide infrastructure helpers."""
