"""Repository implementations for calendar sync."""
