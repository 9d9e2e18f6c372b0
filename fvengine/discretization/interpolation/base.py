"""
Surface interpolation: cell values -> face values.

Every scheme provides owner weights ``w`` per face so that

    phi_f = w * phi_P + (1 - w) * phi_N  [+ correction]

The weights are what the implicit convection operator consumes; the
optional explicit correction is added to the equation source.
"""

import numpy as np

from fvengine.core.fields import SurfaceField
from fvengine.errors import ConfigurationError, TopologyMismatch


def flux_values(mesh, flux, required=True, scheme="scheme"):
    """Plain per-face flux array from a SurfaceField or array."""
    if flux is None:
        if required:
            raise ConfigurationError(f"Interpolation scheme '{scheme}' requires a face flux")
        return None
    values = flux.values if isinstance(flux, SurfaceField) else np.asarray(flux, dtype=np.float64)
    if values.ndim != 1:
        raise TopologyMismatch(f"Face flux must be scalar per face, got shape {values.shape}")
    mesh.check_face_array(values, "Face flux")
    return values


def expand(weights, value_shape):
    """(n_faces,) -> (n_faces, 1, ...) for broadcasting against field values."""
    return weights.reshape(weights.shape + (1,) * len(value_shape))


def neighbour_values(vf):
    """
    Value on the far side of every face: the neighbour cell on internal faces,
    the remote cell on coupled faces and the boundary value elsewhere.
    """
    mesh = vf.mesh
    n_int = mesh.n_internal
    out = np.empty((mesh.n_faces,) + vf.value_shape)
    out[:n_int] = vf.values[mesh.neighbor_cells[:n_int]]
    for patch, bc in vf.boundary.items():
        faces = mesh.patch_faces(patch)
        if bc.coupled:
            out[faces] = bc.patch_neighbour_values()
        else:
            out[faces] = vf.boundary_field[patch]
    return out


def neighbour_gradient(vf, grad_values):
    """Cell gradient on the far side of internal and coupled faces (zero elsewhere)."""
    mesh = vf.mesh
    n_int = mesh.n_internal
    out = np.zeros((mesh.n_faces,) + grad_values.shape[1:])
    out[:n_int] = grad_values[mesh.neighbor_cells[:n_int]]
    for patch, bc in vf.boundary.items():
        if bc.coupled:
            out[mesh.patch_faces(patch)] = bc.patch_neighbour_gradient()
    return out


def coupled_mask(vf):
    """True on internal faces and on faces of coupled patches."""
    mesh = vf.mesh
    mask = np.zeros(mesh.n_faces, dtype=bool)
    mask[: mesh.n_internal] = True
    for patch, bc in vf.boundary.items():
        if bc.coupled:
            mask[mesh.patch_faces(patch)] = True
    return mask


class SurfaceInterpolationScheme:
    """Base of all interpolation schemes; subclasses provide ``weights``."""

    type_name = None

    def __init__(self, mesh, stream=None, schemes=None):
        self.mesh = mesh
        self.schemes = schemes

    def weights(self, vf, flux=None):
        raise NotImplementedError

    def corrected(self):
        return False

    def correction(self, vf, flux=None):
        """Explicit correction added on top of the weighted value (None if uncorrected)."""
        return None

    def interpolate(self, vf, flux=None):
        """Face values of ``vf``: weighted on internal and coupled faces, boundary values elsewhere."""
        mesh = self.mesh
        if vf.mesh is not mesh:
            raise TopologyMismatch(
                f"Field '{vf.name}' is bound to a different mesh than the {self.type_name} scheme"
            )
        w = expand(self.weights(vf, flux), vf.value_shape)
        P = mesh.owner_cells
        phi_N = neighbour_values(vf)
        face = w * vf.values[P] + (1.0 - w) * phi_N

        mask = coupled_mask(vf)
        face[~mask] = phi_N[~mask]

        if self.corrected():
            corr = self.correction(vf, flux)
            face[mask] += corr[mask]
        return SurfaceField(f"interpolate({vf.name})", mesh, face, vf.dimensions)

    def __repr__(self):
        return f"{type(self).__name__}()"
