"""HTTP API exposing the position check workflow."""
