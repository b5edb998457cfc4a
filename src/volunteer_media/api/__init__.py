"""HTTP API for the volunteer portal."""
