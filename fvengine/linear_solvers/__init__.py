from .base_solver import LinearSolver, SolverPerformance, linear_solvers, new_linear_solver
from .scipy_solver import ScipyDirectSolver, ScipyGMRES, ScipyPBiCGStab, ScipyPCG
from .petsc_solver import PetscSolver

__all__ = [
    "LinearSolver",
    "SolverPerformance",
    "linear_solvers",
    "new_linear_solver",
    "ScipyDirectSolver",
    "ScipyGMRES",
    "ScipyPBiCGStab",
    "ScipyPCG",
    "PetscSolver",
]
