"""HTTP API for the civic assistant."""
