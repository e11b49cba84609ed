"""HTTP API for the chat service."""
