"""External service integrations (email, SMS)."""
