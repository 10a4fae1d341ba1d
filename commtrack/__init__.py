"""commtrack: sales commission tracking service."""
