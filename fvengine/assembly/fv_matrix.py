"""
EquationMatrix: the assembled finite volume system of one transported field.

Storage follows the LDU layout over the internal faces of the mesh:

- diag[n_cells]
- upper[n_internal]  coefficient of the neighbour in the owner row
- lower[n_internal]  coefficient of the owner in the neighbour row
- source[n_cells, *value_shape]
- internal_coeffs / boundary_coeffs per patch, shape (n_patch_faces, *value_shape)

The matrix represents ``diag x_P + sum(off x_N) - source``. When the system
is solved the internal coefficients are added to the diagonal and the
boundary coefficients to the source; on coupled patches ``-boundary_coeffs``
is the coefficient of the remote cell instead.
"""

import logging

import numpy as np
from scipy.sparse import coo_matrix

from fvengine.config import SolverControls
from fvengine.core.dimensions import DimensionedScalar, dimVolume
from fvengine.core.fields import SurfaceField, VolField
from fvengine.core.helpers import neg_sum_diag_kernel, sum_mag_off_diag_kernel
from fvengine.errors import ConfigurationError, ConvergenceFailure, TopologyMismatch
from fvengine.linear_solvers import new_linear_solver

logger = logging.getLogger(__name__)


def _expand(cell_values, value_shape):
    return cell_values.reshape(cell_values.shape + (1,) * len(value_shape))


def _component(coeffs, cmpt):
    return coeffs.reshape(coeffs.shape[0], -1)[:, cmpt]


class EquationMatrix:
    def __init__(self, psi, dimensions, name=None):
        mesh = psi.mesh
        self.psi = psi
        self.mesh = mesh
        self.dimensions = dimensions
        self.name = name or psi.name

        value_shape = psi.value_shape
        self.diag = np.zeros(mesh.n_cells)
        self.upper = np.zeros(mesh.n_internal)
        self.lower = np.zeros(mesh.n_internal)
        self.source = np.zeros((mesh.n_cells,) + value_shape)
        self.internal_coeffs = {
            patch: np.zeros((len(faces),) + value_shape) for patch, faces in mesh.patches.items()
        }
        self.boundary_coeffs = {
            patch: np.zeros((len(faces),) + value_shape) for patch, faces in mesh.patches.items()
        }
        # explicit face flux carried alongside the implicit part (non-orthogonal correction)
        self.face_flux_correction = None

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    def neg_sum_diag(self):
        n_int = self.mesh.n_internal
        self.diag += neg_sum_diag_kernel(
            self.mesh.owner_cells[:n_int], self.mesh.neighbor_cells[:n_int],
            self.lower, self.upper, self.mesh.n_cells,
        )

    def copy(self):
        other = EquationMatrix(self.psi, self.dimensions, self.name)
        other.diag = self.diag.copy()
        other.upper = self.upper.copy()
        other.lower = self.lower.copy()
        other.source = self.source.copy()
        other.internal_coeffs = {p: c.copy() for p, c in self.internal_coeffs.items()}
        other.boundary_coeffs = {p: c.copy() for p, c in self.boundary_coeffs.items()}
        if self.face_flux_correction is not None:
            other.face_flux_correction = self.face_flux_correction.copy()
        return other

    @property
    def value_shape(self):
        return self.psi.value_shape

    def symmetric(self):
        return np.array_equal(self.upper, self.lower)

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------
    def _check_matrix(self, other, op):
        if other.psi is not self.psi and (
            other.psi.name != self.psi.name or other.mesh is not self.mesh
        ):
            raise ConfigurationError(
                f"Incompatible fields for operation [{self.name}] {op} [{other.name}]: "
                f"'{self.psi.name}' and '{other.psi.name}'"
            )
        if other.dimensions != self.dimensions:
            raise ConfigurationError(
                f"Incompatible dimensions for operation in equation '{self.name}': "
                f"{self.dimensions} {op} {other.dimensions}"
            )

    def _check_source(self, su, op):
        expected = self.dimensions / dimVolume
        if su.dimensions != expected:
            raise ConfigurationError(
                f"Incompatible dimensions for operation in equation '{self.name}': "
                f"[{self.name}{self.dimensions}] {op} [{su.name}{su.dimensions}], "
                f"explicit terms need {expected}"
            )

    def _source_values(self, su, op):
        if isinstance(su, VolField):
            if su.mesh is not self.mesh:
                raise TopologyMismatch(
                    f"Field '{su.name}' is bound to a different mesh than equation '{self.name}'"
                )
            if su.value_shape != self.value_shape:
                raise TopologyMismatch(
                    f"Field '{su.name}' has value shape {su.value_shape}, equation "
                    f"'{self.name}' has {self.value_shape}"
                )
            self._check_source(su, op)
            return su.values
        self._check_source(su, op)
        return np.broadcast_to(
            np.asarray(su.value, dtype=np.float64), self.source.shape
        )

    def __iadd__(self, other):
        if isinstance(other, EquationMatrix):
            self._check_matrix(other, "+")
            self.diag += other.diag
            self.upper += other.upper
            self.lower += other.lower
            self.source += other.source
            for patch in self.internal_coeffs:
                self.internal_coeffs[patch] += other.internal_coeffs[patch]
                self.boundary_coeffs[patch] += other.boundary_coeffs[patch]
            if other.face_flux_correction is not None:
                if self.face_flux_correction is None:
                    self.face_flux_correction = other.face_flux_correction.copy()
                else:
                    self.face_flux_correction += other.face_flux_correction
            return self
        if isinstance(other, (VolField, DimensionedScalar)):
            V = _expand(self.mesh.cell_volumes, self.value_shape)
            self.source -= V * self._source_values(other, "+")
            return self
        return NotImplemented

    def __isub__(self, other):
        if isinstance(other, EquationMatrix):
            self._check_matrix(other, "-")
            return self.__iadd__(-other)
        if isinstance(other, (VolField, DimensionedScalar)):
            V = _expand(self.mesh.cell_volumes, self.value_shape)
            self.source += V * self._source_values(other, "-")
            return self
        return NotImplemented

    def __add__(self, other):
        if not isinstance(other, (EquationMatrix, VolField, DimensionedScalar)):
            return NotImplemented
        result = self.copy()
        result += other
        return result

    __radd__ = __add__

    def __sub__(self, other):
        if not isinstance(other, (EquationMatrix, VolField, DimensionedScalar)):
            return NotImplemented
        result = self.copy()
        result -= other
        return result

    def __rsub__(self, other):
        if not isinstance(other, (VolField, DimensionedScalar)):
            return NotImplemented
        result = -self
        result += other
        return result

    def __neg__(self):
        result = self.copy()
        result.diag *= -1.0
        result.upper *= -1.0
        result.lower *= -1.0
        result.source *= -1.0
        for patch in result.internal_coeffs:
            result.internal_coeffs[patch] *= -1.0
            result.boundary_coeffs[patch] *= -1.0
        if result.face_flux_correction is not None:
            result.face_flux_correction *= -1.0
        return result

    def __mul__(self, factor):
        if isinstance(factor, DimensionedScalar):
            dims, value = self.dimensions * factor.dimensions, factor.value
        elif np.isscalar(factor):
            dims, value = self.dimensions, float(factor)
        else:
            return NotImplemented
        result = self.copy()
        result.dimensions = dims
        result.diag *= value
        result.upper *= value
        result.lower *= value
        result.source *= value
        for patch in result.internal_coeffs:
            result.internal_coeffs[patch] *= value
            result.boundary_coeffs[patch] *= value
        if result.face_flux_correction is not None:
            result.face_flux_correction *= value
        return result

    __rmul__ = __mul__

    # ------------------------------------------------------------------
    # Relaxation and constraints
    # ------------------------------------------------------------------
    def relax(self, factor=None):
        """
        Implicit under-relaxation with diagonal dominance enforcement.

        ``None`` or 1 leaves the matrix untouched; 0 replaces the system by
        ``x = x_prev``. In between the diagonal is made at least as large as
        the sum of the off-diagonal magnitudes, divided by the factor, and the
        difference is balanced in the source with the previous-iteration
        value so the converged solution is unchanged.
        """
        if factor is None or factor == 1.0:
            return self
        if not 0.0 <= factor <= 1.0:
            raise ConfigurationError(
                f"Relaxation factor of equation '{self.name}' must lie in [0, 1], got {factor}"
            )

        mesh = self.mesh
        psi_prev = self.psi.prev_iter().values

        if factor == 0.0:
            self.diag[:] = 1.0
            self.upper[:] = 0.0
            self.lower[:] = 0.0
            self.source = psi_prev.copy()
            for patch in self.internal_coeffs:
                self.internal_coeffs[patch][...] = 0.0
                self.boundary_coeffs[patch][...] = 0.0
            self.face_flux_correction = None
            return self

        n_int = mesh.n_internal
        D0 = self.diag.copy()
        D = self.diag.copy()
        sum_off = sum_mag_off_diag_kernel(
            mesh.owner_cells[:n_int], mesh.neighbor_cells[:n_int],
            self.lower, self.upper, mesh.n_cells,
        )

        # Handle the boundary contributions to the diagonal
        for patch, ic in self.internal_coeffs.items():
            if len(ic) == 0:
                continue
            cells = mesh.patch_cells(patch)
            if self.psi.boundary[patch].coupled:
                np.add.at(D, cells, _component(ic, 0))
                np.add.at(sum_off, cells, np.abs(_component(self.boundary_coeffs[patch], 0)))
            else:
                # maximum magnitude diagonal contribution for stability
                np.add.at(D, cells, np.abs(ic.reshape(len(ic), -1)).max(axis=1))

        # Ensure the matrix is diagonally dominant, then relax
        D = np.maximum(np.abs(D), sum_off)
        D /= factor

        # Now remove the diagonal contribution from the boundaries
        for patch, ic in self.internal_coeffs.items():
            if len(ic) == 0:
                continue
            cells = mesh.patch_cells(patch)
            if self.psi.boundary[patch].coupled:
                np.subtract.at(D, cells, _component(ic, 0))
            else:
                np.subtract.at(D, cells, ic.reshape(len(ic), -1).min(axis=1))

        # Finally add the relaxation contribution to the source
        self.source += _expand(D - D0, self.value_shape) * psi_prev
        self.diag = D
        return self

    def set_values(self, cells, values):
        """
        Fix the solution in ``cells``: the rows become ``diag x = diag value``
        and the fixed values are moved to the source of the adjacent rows.
        The field takes the fixed values as well.
        """
        mesh = self.mesh
        cells = np.asarray(cells, dtype=np.int64)
        if cells.size == 0:
            return self
        values = np.broadcast_to(
            np.asarray(values, dtype=np.float64), (len(cells),) + self.value_shape
        )

        self.psi.values[cells] = values
        zero_diag = self.diag[cells] == 0.0
        self.diag[cells[zero_diag]] = 1.0
        self.source[cells] = _expand(self.diag[cells], self.value_shape) * values

        fixed = np.zeros(mesh.n_cells, dtype=bool)
        fixed[cells] = True
        fixed_value = np.zeros_like(self.source)
        fixed_value[cells] = values

        n_int = mesh.n_internal
        P = mesh.owner_cells[:n_int]
        N = mesh.neighbor_cells[:n_int]
        own_only = fixed[P] & ~fixed[N]
        nei_only = fixed[N] & ~fixed[P]
        vs = self.value_shape
        np.subtract.at(
            self.source, N[own_only],
            _expand(self.lower[own_only], vs) * fixed_value[P[own_only]],
        )
        np.subtract.at(
            self.source, P[nei_only],
            _expand(self.upper[nei_only], vs) * fixed_value[N[nei_only]],
        )
        touched = fixed[P] | fixed[N]
        self.upper[touched] = 0.0
        self.lower[touched] = 0.0

        for patch, ic in self.internal_coeffs.items():
            on_fixed = fixed[mesh.patch_cells(patch)]
            ic[on_fixed] = 0.0
            self.boundary_coeffs[patch][on_fixed] = 0.0
        return self

    def need_reference(self):
        """True when no boundary condition fixes the level of the solution."""
        return not any(bc.fixes_value for bc in self.psi.boundary.values())

    def set_reference(self, cell, value, force=False):
        """Pin the level of a solution defined up to a constant."""
        if cell is None or cell < 0 or not (force or self.need_reference()):
            return self
        self.source[cell] += self.diag[cell] * np.asarray(value, dtype=np.float64)
        self.diag[cell] += self.diag[cell]
        return self

    # ------------------------------------------------------------------
    # Linear system
    # ------------------------------------------------------------------
    def _internal_boundary_diag(self, cmpt):
        """Diagonal including the internal coefficients of component ``cmpt``."""
        diag = self.diag.copy()
        for patch, ic in self.internal_coeffs.items():
            if len(ic):
                np.add.at(diag, self.mesh.patch_cells(patch), _component(ic, cmpt))
        return diag

    def _boundary_source(self, cmpt, coupled=True):
        """
        Boundary coefficients moved to the right-hand side (times the remote
        values on coupled patches, which are skipped when ``coupled`` is false).
        """
        b = np.zeros(self.mesh.n_cells)
        for patch, bc_coeffs in self.boundary_coeffs.items():
            if len(bc_coeffs) == 0:
                continue
            cells = self.mesh.patch_cells(patch)
            bc = self.psi.boundary[patch]
            if bc.coupled and not coupled:
                continue
            coeffs = _component(bc_coeffs, cmpt)
            if bc.coupled:
                remote = bc.patch_neighbour_values()
                coeffs = coeffs * remote.reshape(len(remote), -1)[:, cmpt]
            np.add.at(b, cells, coeffs)
        return b

    def scalar_system(self, cmpt=0, coupled_source=True):
        """
        CSR matrix and right-hand side of one component. With
        ``coupled_source`` false the coupled patch terms are left out of the
        right-hand side, for assembly into a larger system.
        """
        mesh = self.mesh
        n = mesh.n_cells
        n_int = mesh.n_internal
        P = mesh.owner_cells[:n_int]
        N = mesh.neighbor_cells[:n_int]
        idx = np.arange(n)

        rows = np.concatenate([idx, P, N])
        cols = np.concatenate([idx, N, P])
        data = np.concatenate([self._internal_boundary_diag(cmpt), self.upper, self.lower])
        A = coo_matrix((data, (rows, cols)), shape=(n, n)).tocsr()

        b = _component(self.source, cmpt) + self._boundary_source(cmpt, coupled_source)
        return A, b

    def residual(self):
        """Residual field b - A x of the current field values."""
        n = self.mesh.n_cells
        x = self.psi.values.reshape(n, -1)
        res = np.empty_like(x)
        for cmpt in range(x.shape[1]):
            A, b = self.scalar_system(cmpt)
            res[:, cmpt] = b - A @ x[:, cmpt]
        return res.reshape(self.psi.values.shape)

    def solve(self, controls=None, update_boundaries=True):
        """
        Solve every component with the linear solver of ``controls`` and
        write the result into the field. On divergence ConvergenceFailure is
        raised and the field keeps its values.
        """
        controls = controls if controls is not None else SolverControls()
        solver = new_linear_solver(controls)
        n = self.mesh.n_cells
        psi = self.psi
        x_old = psi.values.reshape(n, -1)
        solution = np.empty_like(x_old)

        performance = None
        for cmpt in range(x_old.shape[1]):
            A, b = self.scalar_system(cmpt)
            name = psi.name if psi.rank == 0 else f"{psi.name}{cmpt}"
            try:
                x, perf = solver.solve(A, b, x_old[:, cmpt], field_name=name)
            except ConvergenceFailure as e:
                if e.performance is None:
                    e.performance = performance
                logger.warning("Solving for %s failed: %s", name, e)
                raise
            logger.info("%s", perf)

            if perf.failed(controls.divergence_threshold) or not np.all(np.isfinite(x)):
                raise ConvergenceFailure(
                    f"Linear solve of '{name}' in equation '{self.name}' diverged: "
                    f"final residual {perf.final_residual:g} above "
                    f"divergenceThreshold {controls.divergence_threshold:g}",
                    perf,
                )
            solution[:, cmpt] = x
            performance = perf if performance is None else performance.merge(perf)

        performance.field_name = psi.name
        psi.values[...] = solution.reshape(psi.values.shape)
        if update_boundaries:
            psi.correct_boundary_conditions()
        return performance

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------
    def _cmpt_av_boundary_diag(self):
        diag = np.zeros(self.mesh.n_cells)
        for patch, ic in self.internal_coeffs.items():
            if len(ic):
                np.add.at(diag, self.mesh.patch_cells(patch), ic.reshape(len(ic), -1).mean(axis=1))
        return diag

    def D(self):
        return self.diag + self._cmpt_av_boundary_diag()

    def A(self):
        """Central coefficient per unit volume."""
        return VolField.calculated(
            f"A({self.psi.name})", self.mesh, self.D() / self.mesh.cell_volumes,
            self.dimensions / self.psi.dimensions / dimVolume,
        )

    def H(self):
        """Off-diagonal contribution plus sources per unit volume, so that x = H / A."""
        mesh = self.mesh
        n = mesh.n_cells
        x = self.psi.values.reshape(n, -1)
        n_int = mesh.n_internal
        P = mesh.owner_cells[:n_int]
        N = mesh.neighbor_cells[:n_int]
        av = self._cmpt_av_boundary_diag()

        H = np.empty_like(x)
        for cmpt in range(x.shape[1]):
            Hc = _component(self.source, cmpt) + self._boundary_source(cmpt)
            np.subtract.at(Hc, P, self.upper * x[N, cmpt])
            np.subtract.at(Hc, N, self.lower * x[P, cmpt])
            # component deviation of the boundary diagonal from its average
            Hc += (av - self._internal_boundary_diag(cmpt) + self.diag) * x[:, cmpt]
            H[:, cmpt] = Hc / mesh.cell_volumes
        return VolField.calculated(
            f"H({self.psi.name})", mesh, H.reshape(self.psi.values.shape),
            self.dimensions / dimVolume,
        )

    def flux(self):
        """Face flux of the implicit operator (plus the explicit face correction)."""
        mesh = self.mesh
        psi = self.psi
        vs = psi.value_shape
        n_int = mesh.n_internal
        P = mesh.owner_cells[:n_int]
        N = mesh.neighbor_cells[:n_int]

        face_flux = np.zeros((mesh.n_faces,) + vs)
        face_flux[:n_int] = (
            _expand(self.upper, vs) * psi.values[N] - _expand(self.lower, vs) * psi.values[P]
        )
        for patch, ic in self.internal_coeffs.items():
            faces = mesh.patch_faces(patch)
            bc = psi.boundary[patch]
            internal = psi.values[mesh.patch_cells(patch)]
            if bc.coupled:
                face_flux[faces] = ic * internal - self.boundary_coeffs[patch] * bc.patch_neighbour_values()
            else:
                face_flux[faces] = ic * internal - self.boundary_coeffs[patch]
        if self.face_flux_correction is not None:
            face_flux += self.face_flux_correction
        return SurfaceField(f"flux({psi.name})", mesh, face_flux, self.dimensions)

    def __repr__(self):
        return (
            f"EquationMatrix(name={self.name!r}, field={self.psi.name!r}, "
            f"dimensions={self.dimensions})"
        )
