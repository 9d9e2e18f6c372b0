"""
Core data of the engine: dimensions, fields, boundary conditions, time
state and the simulation context that owns them.
"""

from .dimensions import DimensionSet, DimensionedScalar, dimless
from .registry import SchemeRegistry, SchemeStream
from .boundary import BoundaryCondition, new_boundary, patch_field_types
from .fields import SurfaceField, VolField
from .time import TimeState
from .context import SchemeTable, SimulationContext

__all__ = [
    "DimensionSet",
    "DimensionedScalar",
    "dimless",
    "SchemeRegistry",
    "SchemeStream",
    "BoundaryCondition",
    "new_boundary",
    "patch_field_types",
    "SurfaceField",
    "VolField",
    "TimeState",
    "SchemeTable",
    "SimulationContext",
]
