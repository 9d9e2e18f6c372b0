"""
fvengine: finite volume equation assembly with run-time selectable schemes.
"""

from .errors import ConfigurationError, ConvergenceFailure, FvEngineError, TopologyMismatch
from .core import DimensionedScalar, DimensionSet, SimulationContext, SurfaceField, VolField
from .discretization import SchemeRegistry, SchemeStream
from .assembly import CouplingTerm, EquationMatrix, FvOptions, fvc, fvm
from .solvers import LoopState, OuterCorrectorLoop

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ConvergenceFailure",
    "FvEngineError",
    "TopologyMismatch",
    "DimensionedScalar",
    "DimensionSet",
    "SimulationContext",
    "SurfaceField",
    "VolField",
    "SchemeRegistry",
    "SchemeStream",
    "CouplingTerm",
    "EquationMatrix",
    "FvOptions",
    "fvc",
    "fvm",
    "LoopState",
    "OuterCorrectorLoop",
]
