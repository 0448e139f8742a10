"""Database engine, sessions and retry helpers."""
