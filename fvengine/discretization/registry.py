"""
Selection tables of the discretisation schemes, one per operator category.

All scheme constructors share the signature ``(mesh, stream, schemes=None)``
where ``stream`` is the remainder of the scheme entry and ``schemes`` the
scheme table of the case, used by composite schemes to reach the schemes of
other categories (e.g. a corrected snGrad needs a gradient scheme).
"""

from fvengine.core.registry import SchemeRegistry, SchemeStream

interpolation_schemes = SchemeRegistry("interpolation")
grad_schemes = SchemeRegistry("grad")
sn_grad_schemes = SchemeRegistry("snGrad")
ddt_schemes = SchemeRegistry("ddt")
div_schemes = SchemeRegistry("div")
laplacian_schemes = SchemeRegistry("laplacian")

__all__ = [
    "SchemeRegistry",
    "SchemeStream",
    "interpolation_schemes",
    "grad_schemes",
    "sn_grad_schemes",
    "ddt_schemes",
    "div_schemes",
    "laplacian_schemes",
]
