"""User profile records (the Users collection)."""
