"""Command-line interface for store maintenance."""
