"""Cross-cutting platform concerns (error taxonomy)."""
