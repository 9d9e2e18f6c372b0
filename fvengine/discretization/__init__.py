"""
Discretisation schemes, one run-time selection table per category.

Importing this package registers every built-in scheme.
"""

from .registry import (
    SchemeRegistry,
    SchemeStream,
    ddt_schemes,
    div_schemes,
    grad_schemes,
    interpolation_schemes,
    laplacian_schemes,
    sn_grad_schemes,
)
from .interpolation import schemes as _interpolation
from .interpolation import linear_upwind as _linear_upwind
from .interpolation import limited as _limited
from .gradient import gauss as _gauss_grad
from .gradient import least_squares as _least_squares
from .diffusion import sn_grad as _sn_grad
from .diffusion import gauss_laplacian as _gauss_laplacian
from .convection import gauss_convection as _gauss_convection
from .ddt import schemes as _ddt

__all__ = [
    "SchemeRegistry",
    "SchemeStream",
    "ddt_schemes",
    "div_schemes",
    "grad_schemes",
    "interpolation_schemes",
    "laplacian_schemes",
    "sn_grad_schemes",
]
