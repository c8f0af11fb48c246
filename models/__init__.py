"""Request options and result models."""
