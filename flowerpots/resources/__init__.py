"""User-owned resources: pots and everything hanging off a pot."""
