"""Pure domain types for the lead marketplace core."""
