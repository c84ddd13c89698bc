"""Session records and their file-backed persistence."""
