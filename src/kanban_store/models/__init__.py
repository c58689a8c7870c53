"""Database tables and boundary payload models."""
