"""Alert storage backends."""
