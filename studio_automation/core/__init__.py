"""Core configuration, constants and runtime helpers."""
