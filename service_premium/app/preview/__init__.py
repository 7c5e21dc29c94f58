"""HTML-aware truncation for content previews."""
