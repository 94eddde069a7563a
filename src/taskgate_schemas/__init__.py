"""JSON schemas for taskgate structured documents (package data)."""
