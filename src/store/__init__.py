"""Hierarchical variable store layer.

This package binds dotted path names to engine tensors, persists
them as versioned archives, and hands out generation-tagged handles.
"""
