"""Business operations on top of the marketplace store."""
