"""Shared errors, constants, typed models, configuration, and logging."""
