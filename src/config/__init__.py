"""Handler settings loaded from the environment."""
