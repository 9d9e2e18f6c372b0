"""
Mesh module for the fvengine assembly engine.

Provides the immutable mesh topology consumed by the schemes, plus small
builders (structured, polygon, Gmsh via meshio) used to exercise the engine.
"""

from .mesh_data import MeshData, ProcessorPatch, build_mesh_data
from .mesh_builder import build_polygon_mesh
from .structured import generate_structured, generate_line
from .mesh_loader import load_mesh

__all__ = [
    "MeshData",
    "ProcessorPatch",
    "build_mesh_data",
    "build_polygon_mesh",
    "generate_structured",
    "generate_line",
    "load_mesh",
]
