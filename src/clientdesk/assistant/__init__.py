"""Website chat assistant."""
