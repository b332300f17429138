"""Configuration, lifecycle and response helpers."""
