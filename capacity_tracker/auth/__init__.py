"""Authentication dependencies (JWT validation, capability checks)."""
