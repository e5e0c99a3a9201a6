"""Application assembly: Flask app factory, CLI commands and demo seeding."""
