"""
Run a transport case described by a YAML file.

    python main.py cases/diffusion_line.yaml [--log-file run.log] [--debug]

The case file holds the mesh, the fields, the transport properties, the
model and the usual schemes/solution/time sections (see fvengine.config).
"""

import argparse
import logging

import numpy as np

from fvengine.assembly.options import FvOptions
from fvengine.config import load_case_config
from fvengine.core.context import SimulationContext
from fvengine.core.dimensions import DimensionedScalar, DimensionSet, dimVolumetricFlux
from fvengine.core.fields import SurfaceField
from fvengine.errors import ConfigurationError
from fvengine.logging_config import setup_logging
from fvengine.mesh import generate_structured, load_mesh
from fvengine.models import PhaseEnergy, PhaseProperties, ScalarTransport

logger = logging.getLogger("fvengine.main")


def build_mesh(entry):
    if "file" in entry:
        return load_mesh(entry["file"], entry.get("patchConfig"))
    return generate_structured(
        nx=int(entry.get("nx", 10)), ny=int(entry.get("ny", 10)),
        Lx=float(entry.get("Lx", 1.0)), Ly=float(entry.get("Ly", 1.0)),
        skew=float(entry.get("skew", 0.0)), patch_types=entry.get("patchTypes"),
    )


def read_properties(data):
    properties = {}
    for name, entry in (data or {}).items():
        if isinstance(entry, dict):
            dims = DimensionSet.from_sequence(entry.get("dimensions", [0] * 7))
            properties[name] = DimensionedScalar(name, dims, entry["value"])
        else:
            properties[name] = DimensionedScalar(name, DimensionSet(), entry)
    return properties


def uniform_flux(mesh, velocity, name="phi"):
    values = mesh.vector_S_f @ np.asarray(velocity, dtype=np.float64)
    return SurfaceField(name, mesh, values, dimVolumetricFlux)


def _property(properties, name):
    if name not in properties:
        raise ConfigurationError(
            f"Unknown transport property '{name}'; defined are {sorted(properties)}"
        )
    return properties[name]


def build_model(ctx, model, properties, fv_options):
    model_type = model.get("type")
    if model_type == "scalarTransport":
        flux = uniform_flux(ctx.mesh, model["velocity"]) if "velocity" in model else None
        return ScalarTransport(
            ctx, model["field"], _property(properties, model["diffusivity"]),
            flux=flux, fv_options=fv_options,
        )
    if model_type == "phaseEnergy":
        phases = []
        for i, phase in enumerate(model["phases"]):
            flux = None
            if "velocity" in phase:
                flux = uniform_flux(ctx.mesh, phase["velocity"], f"phi{i + 1}")
            phases.append(
                PhaseProperties(
                    field=phase["field"],
                    diffusivity=_property(properties, phase["diffusivity"]),
                    flux=flux,
                )
            )
        if len(phases) != 2:
            raise ConfigurationError(f"phaseEnergy needs two phases, got {len(phases)}")
        return PhaseEnergy(
            ctx, phases[0], phases[1],
            _property(properties, model["exchangeCoefficient"]),
            implicit_coupling=bool(model.get("implicitCoupling", True)),
            fv_options=fv_options,
        )
    raise ConfigurationError(
        f"Unknown model type '{model_type}'; valid types are ['phaseEnergy', 'scalarTransport']"
    )


def run_case(filename):
    case = load_case_config(filename)
    mesh = build_mesh(case.mesh)
    logger.info("Mesh: %r", mesh)
    ctx = SimulationContext.from_case(mesh, case)
    fv_options = FvOptions.from_dict(mesh, case.fv_options)
    properties = read_properties(case.transport_properties)

    model = build_model(ctx, case.model, properties, fv_options)
    results = model.run(case.end_time)
    for name in ctx.field_names():
        values = ctx.lookup(name).values
        logger.info("%s: min %g, max %g", name, values.min(), values.max())
    return ctx, results


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run a finite volume transport case")
    parser.add_argument("case", help="YAML case file")
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--debug", action="store_true", help="same as --log-level DEBUG")
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.debug else args.log_level, args.log_file)
    run_case(args.case)


if __name__ == "__main__":
    main()
