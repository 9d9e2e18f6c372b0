"""
Linear solver interface.

A solver receives one scalar system ``A x = b`` in CSR format, the initial
guess and the solver controls of the equation, and reports a
SolverPerformance with OpenFOAM-style normalised residuals.
"""

import logging
from dataclasses import dataclass

import numpy as np

from fvengine.core.helpers import norm_factor, normalised_residual
from fvengine.core.registry import SchemeRegistry
from fvengine.errors import ConfigurationError

logger = logging.getLogger(__name__)

linear_solvers = SchemeRegistry("linearSolver")


@dataclass
class SolverPerformance:
    solver_name: str = ""
    field_name: str = ""
    initial_residual: float = 0.0
    final_residual: float = 0.0
    n_iterations: int = 0
    converged: bool = False
    singular: bool = False

    def failed(self, threshold):
        """Diverged: non-finite residual or final residual above the hard threshold."""
        return (not np.isfinite(self.final_residual)) or self.final_residual > threshold

    def merge(self, other):
        """Combine component performances: worst residuals, most iterations."""
        return SolverPerformance(
            solver_name=self.solver_name or other.solver_name,
            field_name=self.field_name,
            initial_residual=max(self.initial_residual, other.initial_residual),
            final_residual=max(self.final_residual, other.final_residual),
            n_iterations=max(self.n_iterations, other.n_iterations),
            converged=self.converged and other.converged,
            singular=self.singular or other.singular,
        )

    def __str__(self):
        return (
            f"{self.solver_name}:  Solving for {self.field_name}, "
            f"Initial residual = {self.initial_residual:.6g}, "
            f"Final residual = {self.final_residual:.6g}, "
            f"No Iterations {self.n_iterations}"
        )


class LinearSolver:
    """Base class; subclasses implement ``_solve(A, b, x0, atol)``."""

    type_name = None

    def __init__(self, controls):
        self.controls = controls

    def solve(self, A, b, x0, field_name=""):
        A = A.tocsr()
        n = b.shape[0]
        x0 = np.ascontiguousarray(x0, dtype=np.float64)
        b = np.ascontiguousarray(b, dtype=np.float64)

        performance = SolverPerformance(solver_name=self.type_name, field_name=field_name)
        if n == 0:
            performance.converged = True
            return x0.copy(), performance

        scale = norm_factor(A, x0, b)
        res0 = np.sum(np.abs(b - A @ x0))
        performance.initial_residual = res0 / scale
        performance.final_residual = performance.initial_residual

        if performance.initial_residual < self.controls.tolerance:
            performance.converged = True
            return x0.copy(), performance

        # L1 target, turned into a 2-norm bound (|r|_1 <= sqrt(n) |r|_2)
        target = max(self.controls.tolerance * scale, self.controls.rel_tol * res0)
        x, n_iter = self._solve(A, b, x0, target / np.sqrt(n))

        performance.n_iterations = n_iter
        if np.all(np.isfinite(x)):
            performance.final_residual = normalised_residual(A, x, b)
        else:
            performance.final_residual = np.inf
        performance.converged = (
            performance.final_residual < self.controls.tolerance
            or performance.final_residual
            <= self.controls.rel_tol * performance.initial_residual
        )
        return x, performance

    def _solve(self, A, b, x0, atol):
        raise NotImplementedError


def new_linear_solver(controls):
    """Linear solver selected by ``controls.solver``."""
    if not controls.solver:
        raise ConfigurationError("No linear solver given in the solver controls")
    return linear_solvers.lookup(controls.solver)(controls)
