"""
Equation assembly: implicit (fvm) and explicit (fvc) operators, the
EquationMatrix they build, inter-equation coupling and fvOptions.
"""

from .fv_matrix import EquationMatrix
from . import fvm, fvc
from .coupling import CouplingTerm
from .options import FvOptions, fv_option_types

__all__ = [
    "EquationMatrix",
    "fvm",
    "fvc",
    "CouplingTerm",
    "FvOptions",
    "fv_option_types",
]
