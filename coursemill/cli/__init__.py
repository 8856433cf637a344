"""Command-line entry points for coursemill."""
