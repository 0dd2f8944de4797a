"""GitHub webhook receiver."""
