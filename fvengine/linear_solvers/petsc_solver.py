"""PETSc KSP backend (optional dependency, install the ``petsc`` extra)."""

import numpy as np

from fvengine.errors import ConfigurationError, ConvergenceFailure
from fvengine.linear_solvers.base_solver import LinearSolver, linear_solvers

_PC_TYPES = {"none": "none", "diagonal": "jacobi", "DIC": "icc", "DILU": "ilu", "ILU": "ilu",
             "hypre": "hypre"}


def _petsc():
    try:
        from petsc4py import PETSc
    except ImportError as e:
        raise ConfigurationError(
            "Linear solver 'petsc' needs petsc4py; install fvengine[petsc]"
        ) from e
    return PETSc


@linear_solvers.register("petsc")
class PetscSolver(LinearSolver):
    """
    Solve A x = b using a PETSc BiCGStab KSP.

    The KSP is created on first use and reused while the system size stays
    the same.
    """

    def __init__(self, controls):
        super().__init__(controls)
        if controls.preconditioner not in _PC_TYPES:
            raise ConfigurationError(
                f"Unknown preconditioner '{controls.preconditioner}' for petsc; "
                f"valid preconditioners are {sorted(_PC_TYPES)}"
            )
        self.ksp = None

    def _solve(self, A_csr, b_np, x0, atol):
        PETSc = _petsc()
        n = A_csr.shape[0]

        # Create PETSc matrix from SciPy CSR
        A_petsc = PETSc.Mat().createAIJ(size=A_csr.shape,
                                        csr=(A_csr.indptr, A_csr.indices, A_csr.data))
        b_petsc = x_petsc = None
        try:
            A_petsc.assemble()

            # Create PETSc vectors
            b_petsc = PETSc.Vec().createWithArray(b_np)
            x_petsc = PETSc.Vec().createWithArray(x0.copy())

            if self.ksp is None or self.ksp.getOperators()[0].getSize()[0] != n:
                self._reset_ksp()
                self.ksp = PETSc.KSP().create()
                self.ksp.setType("bcgs")
                self.ksp.getPC().setType(_PC_TYPES[self.controls.preconditioner])
                self.ksp.setFromOptions()
            self.ksp.setOperators(A_petsc)
            self.ksp.setInitialGuessNonzero(True)
            self.ksp.setTolerances(rtol=0.0, atol=atol, max_it=self.controls.max_iter)

            self.ksp.solve(b_petsc, x_petsc)
            reason = self.ksp.getConvergedReason()
            if reason < 0 and reason != PETSc.KSP.ConvergedReason.DIVERGED_ITS:
                # a failed KSP is not reused for the next system
                self._reset_ksp()
                raise ConvergenceFailure(f"PETSc did not converge. Reason: {reason}")

            x_np = x_petsc.getArray().copy()
            iterations = self.ksp.getIterationNumber()
        finally:
            A_petsc.destroy()
            for vec in (b_petsc, x_petsc):
                if vec is not None:
                    vec.destroy()

        return np.asarray(x_np, dtype=np.float64), iterations

    def _reset_ksp(self):
        if self.ksp is not None:
            self.ksp.destroy()
            self.ksp = None
