"""Read-only integrations with external systems."""
