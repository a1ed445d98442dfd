"""CLI for seedsmith."""
