"""HTTP API for Academy Core."""
