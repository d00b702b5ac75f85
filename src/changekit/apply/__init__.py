"""Change-set parsing, matching and transactional application."""
