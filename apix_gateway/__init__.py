"""Gateway running requests through configurable chains of extension services."""
