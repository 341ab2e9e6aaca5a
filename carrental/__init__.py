"""Car rental booking service."""
