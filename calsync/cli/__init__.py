"""Command line entry points for calendar sync."""
