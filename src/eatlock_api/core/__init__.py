"""Configuration, errors and background jobs."""
