"""Tensor engine binding, device resolution, and initializer policies."""
