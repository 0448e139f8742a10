"""Session tokens, roles, OAuth and tenant access."""
