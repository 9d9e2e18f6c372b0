"""Convection (divergence) schemes."""
