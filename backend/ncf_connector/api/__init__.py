"""HTTP API for the connector."""
