"""Returns Management System backend."""
