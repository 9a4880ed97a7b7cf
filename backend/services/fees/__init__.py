"""Usage-based fee computation."""
