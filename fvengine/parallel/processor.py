"""
Solving a decomposed equation.

Every partition assembles its own EquationMatrix on its local mesh. The
local systems are gathered into the global one, where the boundary
coefficients of processor patches become the off-diagonal couplings to the
remote cells, solved once, and the solution is scattered back to the
partition fields with a fresh halo exchange.
"""

import logging

import numpy as np
from scipy.sparse import coo_matrix

from fvengine.config import SolverControls
from fvengine.core.context import SimulationContext
from fvengine.errors import ConvergenceFailure
from fvengine.linear_solvers import new_linear_solver

logger = logging.getLogger(__name__)


def local_contexts(decomposition, ctx):
    """One SimulationContext per partition sharing the schemes, controls and time of ``ctx``."""
    return [
        SimulationContext(partition.mesh, ctx.schemes.config, ctx.solution, ctx.time)
        for partition in decomposition
    ]


def exchange_gradient_halos(decomposition, contexts, local_fields):
    """Compute ``grad(<field>)`` on every partition and exchange it across processor patches."""
    name = local_fields[0].name
    gradients = [
        local_ctx.schemes.grad(f"grad({name})").grad(local).values
        for local_ctx, local in zip(contexts, local_fields)
    ]
    decomposition.exchange_gradients(local_fields, gradients)
    return gradients


def gather(decomposition, local_eqns, cmpt=0):
    """Global CSR matrix and right-hand side of one component."""
    n = decomposition.mesh.n_cells
    rows, cols, data = [], [], []
    b = np.zeros(n)

    for partition, eqn in zip(decomposition, local_eqns):
        cell_map = partition.cell_map
        A, b_local = eqn.scalar_system(cmpt, coupled_source=False)
        A = A.tocoo()
        rows.append(cell_map[A.row])
        cols.append(cell_map[A.col])
        data.append(A.data)
        b[cell_map] += b_local

        mesh = partition.mesh
        for patch, info in mesh.coupled_patches.items():
            coeffs = eqn.boundary_coeffs[patch]
            if len(coeffs) == 0:
                continue
            remote_map = decomposition.partitions[info.neighbour_partition].cell_map
            rows.append(cell_map[mesh.patch_cells(patch)])
            cols.append(remote_map[info.neighbour_cells])
            data.append(-coeffs.reshape(len(coeffs), -1)[:, cmpt])

    A = coo_matrix(
        (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))), shape=(n, n)
    ).tocsr()
    return A, b


def solve_decomposed(decomposition, local_eqns, controls=None):
    """
    Solve the gathered system of the partition equations and write the
    solution into their fields. Raises ConvergenceFailure before any field
    is touched when the solve diverges.
    """
    controls = controls if controls is not None else SolverControls()
    solver = new_linear_solver(controls)
    local_fields = [eqn.psi for eqn in local_eqns]
    x_old = decomposition.reconstruct(local_fields)
    n = decomposition.mesh.n_cells
    x_old = x_old.reshape(n, -1)
    solution = np.empty_like(x_old)
    name = local_fields[0].name

    performance = None
    for cmpt in range(x_old.shape[1]):
        A, b = gather(decomposition, local_eqns, cmpt)
        x, perf = solver.solve(A, b, x_old[:, cmpt], field_name=name)
        logger.info("%s", perf)
        if perf.failed(controls.divergence_threshold):
            raise ConvergenceFailure(
                f"Decomposed solve of '{name}' diverged: final residual "
                f"{perf.final_residual:g} above divergenceThreshold "
                f"{controls.divergence_threshold:g}",
                perf,
            )
        solution[:, cmpt] = x
        performance = perf if performance is None else performance.merge(perf)

    value_shape = local_fields[0].value_shape
    for partition, local in zip(decomposition, local_fields):
        local.values[...] = solution[partition.cell_map].reshape((-1,) + value_shape)
    decomposition.exchange(local_fields)
    performance.field_name = name
    return performance
