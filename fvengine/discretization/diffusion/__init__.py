"""Laplacian and surface-normal gradient schemes."""
