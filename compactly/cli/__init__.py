"""CLI module for compactly."""
