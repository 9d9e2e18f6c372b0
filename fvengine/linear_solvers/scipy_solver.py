"""SciPy linear solvers: sparse direct, PCG, PBiCGStab and GMRES."""

import numpy as np
from scipy.sparse import diags
from scipy.sparse.linalg import LinearOperator, bicgstab, cg, gmres, spilu, spsolve

from fvengine.errors import ConfigurationError, ConvergenceFailure
from fvengine.linear_solvers.base_solver import LinearSolver, linear_solvers

PRECONDITIONERS = ("DIC", "DILU", "diagonal", "ILU", "none")


@linear_solvers.register("direct")
class ScipyDirectSolver(LinearSolver):
    """
    A direct linear solver using SciPy's spsolve for sparse matrices.
    Always one "iteration".
    """

    def _solve(self, A, b, x0, atol):
        try:
            x = spsolve(A.tocsc(), b)
        except RuntimeError as e:
            raise ConvergenceFailure(f"SciPy spsolve failed: {e}") from e
        return np.asarray(x, dtype=np.float64), 1


class KrylovSolver(LinearSolver):
    method = None

    def __init__(self, controls):
        super().__init__(controls)
        if controls.preconditioner not in PRECONDITIONERS:
            raise ConfigurationError(
                f"Unknown preconditioner '{controls.preconditioner}' for {self.type_name}; "
                f"valid preconditioners are {sorted(PRECONDITIONERS)}"
            )

    def preconditioner(self, A):
        name = self.controls.preconditioner
        if name == "none":
            return None
        if name in ("diagonal", "DIC", "DILU"):
            d = A.diagonal()
            d = np.where(np.abs(d) > 0.0, d, 1.0)
            return diags(1.0 / d)
        ilu = spilu(A.tocsc())
        return LinearOperator(A.shape, ilu.solve)

    def _solve(self, A, b, x0, atol):
        iterations = []
        x, info = self.method(
            A, b, x0=x0, rtol=0.0, atol=atol, maxiter=self.controls.max_iter,
            M=self.preconditioner(A), callback=lambda *_: iterations.append(1),
        )
        if info < 0:
            raise ConvergenceFailure(f"{self.type_name} breakdown (info={info})")
        # info > 0: maxIter reached, the residual decides
        return x, len(iterations)


@linear_solvers.register("PCG")
class ScipyPCG(KrylovSolver):
    """Preconditioned conjugate gradients, for symmetric matrices (diffusion)."""

    method = staticmethod(cg)


@linear_solvers.register("PBiCGStab")
class ScipyPBiCGStab(KrylovSolver):
    method = staticmethod(bicgstab)


@linear_solvers.register("GMRES")
class ScipyGMRES(KrylovSolver):
    def _solve(self, A, b, x0, atol):
        iterations = []
        x, info = gmres(
            A, b, x0=x0, rtol=0.0, atol=atol, maxiter=self.controls.max_iter,
            M=self.preconditioner(A), callback=lambda *_: iterations.append(1),
            callback_type="pr_norm",
        )
        if info < 0:
            raise ConvergenceFailure(f"GMRES breakdown (info={info})")
        return x, len(iterations)
