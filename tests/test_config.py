from pathlib import Path

import pytest

from fvengine.config import (
    CaseConfig,
    SchemesConfig,
    SolutionConfig,
    SolverControls,
    load_case_config,
)
from fvengine.errors import ConfigurationError

CASES = Path(__file__).parent.parent / "cases"


def test_scheme_lookup_order():
    config = SchemesConfig.from_dict({
        "divSchemes": {
            "default": "Gauss linear",
            "div(phi,T)": "Gauss upwind",
            r"div\(phi,(U|V)\)": "Gauss limitedLinear 1",
        },
    })
    assert config.lookup("divSchemes", "div(phi,T)") == "Gauss upwind"
    assert config.lookup("divSchemes", "div(phi,V)") == "Gauss limitedLinear 1"
    assert config.lookup("divSchemes", "div(phi,K)") == "Gauss linear"


def test_scheme_lookup_regex_key():
    config = SchemesConfig.from_dict({
        "laplacianSchemes": {r"laplacian\(k,(T1|T2)\)": "Gauss linear uncorrected"},
    })
    assert config.lookup("laplacianSchemes", "laplacian(k,T2)") == "Gauss linear uncorrected"


def test_unknown_scheme_section():
    with pytest.raises(ConfigurationError, match="Unknown scheme sections"):
        SchemesConfig.from_dict({"fluxSchemes": {}})
    with pytest.raises(ConfigurationError, match="not defined"):
        SchemesConfig().lookup("ddtSchemes", "ddt(T)")


def test_solver_controls_defaults():
    controls = SolutionConfig().solver_controls("T")
    assert controls.solver == "direct"
    assert controls.n_outer_correctors == 0
    assert controls.divergence_threshold == 1.0


def test_solver_controls_from_dict():
    solution = SolutionConfig.from_dict({
        "solvers": {"(T1|T2)": {"solver": "PCG", "tolerance": "1e-9", "nOuterCorrectors": 3}},
        "relaxationFactors": {"equations": {"T1": 0.7, "default": 1.0}},
    })
    controls = solution.solver_controls("T2")
    assert controls.solver == "PCG"
    assert controls.tolerance == 1e-9
    assert controls.n_outer_correctors == 3
    assert controls.to_dict()["nOuterCorrectors"] == 3
    assert solution.relaxation_factor("T1") == 0.7
    assert solution.relaxation_factor("T2") == 1.0
    assert SolutionConfig().relaxation_factor("T") is None


def test_solver_controls_validation():
    with pytest.raises(ConfigurationError, match="Unknown solver control entries"):
        SolverControls.from_dict({"tolerence": 1e-6}, "T")
    with pytest.raises(ConfigurationError, match="nOuterCorrectors"):
        SolverControls(n_outer_correctors=-1)
    with pytest.raises(ConfigurationError, match="maxIter"):
        SolverControls(max_iter=0)


def test_relaxation_factor_range():
    solution = SolutionConfig.from_dict({"relaxationFactors": {"equations": {"T": 1.5}}})
    with pytest.raises(ConfigurationError, match="must lie in"):
        solution.relaxation_factor("T")


def test_case_config_time_defaults():
    case = CaseConfig.from_dict({"time": {"deltaT": 0.5, "startTime": 1.0}})
    assert case.delta_t == 0.5
    assert case.start_time == 1.0
    assert case.end_time == 1.5
    assert case.fields == {}
    assert case.fv_options == {}


def test_load_case_files():
    for path in sorted(CASES.glob("*.yaml")):
        case = load_case_config(path)
        assert case.fields, f"{path.name} has no fields"
        assert case.end_time > case.start_time
        assert case.model, f"{path.name} has no model"


def test_heated_plate_convection_key():
    case = load_case_config(CASES / "heated_plate.yaml")
    assert set(case.schemes.sections["divSchemes"]) == {"default", "div(phi,T)"}
    assert case.schemes.lookup("divSchemes", "div(phi,T)") == "Gauss limitedLinear 1"
    assert case.transport_properties["DT"]["value"] == 0.01


def test_load_case_not_a_mapping(tmp_path):
    path = tmp_path / "case.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError, match="mapping"):
        load_case_config(path)
