"""
Scalar transport: the general convection-diffusion equation of one field,

    ddt(rho, T) + div(phi, T) - laplacian(DT, T) == fvOptions(T)

driven through the outer corrector loop once per time step.
"""

import logging

from fvengine.assembly import fvm
from fvengine.assembly.options import FvOptions
from fvengine.solvers.outer_loop import OuterCorrectorLoop

logger = logging.getLogger(__name__)


class ScalarTransport:
    def __init__(self, ctx, field, diffusivity, flux=None, rho=None, fv_options=None):
        self.ctx = ctx
        self.field = ctx.lookup(field) if isinstance(field, str) else field
        self.diffusivity = diffusivity
        self.flux = flux
        self.rho = rho
        self.fv_options = fv_options if fv_options is not None else FvOptions()

    def assemble(self):
        ctx, T = self.ctx, self.field
        eqn = fvm.ddt(ctx, T, self.rho)
        if self.flux is not None:
            eqn += fvm.div(ctx, self.flux, T)
        eqn -= fvm.laplacian(ctx, self.diffusivity, T)
        return eqn

    def solve(self):
        """All outer correctors of the current time step."""
        return OuterCorrectorLoop(self.ctx, self.field, self.assemble, self.fv_options).run()

    def run(self, end_time):
        """Advance in time until ``end_time``; stops at the first diverged step."""
        results = []
        while self.ctx.time.value < end_time - 1.0e-12 * self.ctx.delta_t:
            self.ctx.advance_time()
            result = self.solve()
            results.append(result)
            if result.diverged:
                logger.error(
                    "Stopping %s transport at time %g", self.field.name, self.ctx.time.value
                )
                break
        return results
