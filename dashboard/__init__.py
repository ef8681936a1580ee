"""LinguaComic dashboard (Flask JSON API)."""
