"""
Minor head loss across a pipe fitting.

A fitting is mounted in the test section, the flow rate is set, the pump
primed, and pressure gauges are placed on the fitting's inlet and outlet
ports. Answers are checked against the reference table for the
(component, flow condition) pair.
"""

import os
from enum import Enum, auto

import formulas
from config import AppConfig
from ledger import HeadLossRecord
from procedure import (
    AdvanceRule,
    Dependencies,
    ExperimentDefinition,
    ManualField,
    StepRule,
    TimedProcess,
)
from reference_data import ReferenceDataset
from state import ProcedureState, StateUpdate
from validation import RELATIVE, AnswerField, ToleranceRule

NAME = "minor_head_loss"

COMPONENTS = frozenset({"globe-valve", "smooth-bend", "reducer"})

# (inlet port, outlet port) for each fitting
GAUGE_PORTS: dict[str, tuple[str, str]] = {
    "globe-valve": ("valve-in", "valve-out"),
    "smooth-bend": ("bend-out", "reducer-in"),
    "reducer": ("reducer-in", "reducer-out"),
}

FLOW_CONDITIONS: dict[float, str] = {
    0.0002: "Q1",
    0.0003: "Q2",
    0.0005: "Q3",
}

GAUGE = "pressure-gauge"
TOLERANCE = 0.10


class HeadLossStep(Enum):
    COMPONENT_SELECTION = auto()
    FLOW_SETUP = auto()
    PUMP_PRIMING = auto()
    INLET_GAUGE = auto()
    OUTLET_GAUGE = auto()
    CALCULATION = auto()


def condition_for(flow_rate: float) -> str:
    for rate, label in FLOW_CONDITIONS.items():
        if abs(rate - flow_rate) <= 1e-12:
            return label
    raise KeyError(f"No flow condition for {flow_rate}")


def _port(index: int):
    def stations(state: ProcedureState) -> frozenset[str]:
        ports = GAUGE_PORTS.get(state.get("component"))
        return frozenset({ports[index]}) if ports else frozenset()
    return stations


def _primed(state: ProcedureState, deps: Dependencies) -> StateUpdate:
    return {"pump_primed": True}


def _gauge_reading(key: str):
    def effect(state: ProcedureState, deps: Dependencies) -> StateUpdate:
        entry = deps.references.require(state.get("component"), state.get("condition"))
        return {key: entry.input(key)}
    return effect


RULES = {
    HeadLossStep.COMPONENT_SELECTION: StepRule(
        step=HeadLossStep.COMPONENT_SELECTION,
        stations=frozenset({"test-section"}),
        items=COMPONENTS,
        item_field="component",
        instruction="Mount a fitting in the test section",
    ),
    HeadLossStep.FLOW_SETUP: StepRule(
        step=HeadLossStep.FLOW_SETUP,
        manual_fields=(
            ManualField(
                "flow_rate",
                choices=tuple(FLOW_CONDITIONS),
                on_accept=lambda value: {"condition": condition_for(value)},
            ),
        ),
        instruction="Set the flow rate",
    ),
    HeadLossStep.PUMP_PRIMING: StepRule(
        step=HeadLossStep.PUMP_PRIMING,
        advance=AdvanceRule(requires=("component", "flow_rate")),
        process=TimedProcess("pump_priming", "pump_priming", _primed),
        instruction="Prime the pump and wait for the flow to stabilize",
    ),
    HeadLossStep.INLET_GAUGE: StepRule(
        step=HeadLossStep.INLET_GAUGE,
        stations=_port(0),
        items=frozenset({GAUGE}),
        item_field="gauge",
        precondition=lambda state: state.get("pump_primed", False),
        process=TimedProcess("inlet_reading", "gauge_stabilization", _gauge_reading("p1")),
        instruction="Attach a pressure gauge to the inlet port",
    ),
    HeadLossStep.OUTLET_GAUGE: StepRule(
        step=HeadLossStep.OUTLET_GAUGE,
        stations=_port(1),
        items=frozenset({GAUGE}),
        item_field="gauge",
        precondition=lambda state: state.has("p1"),
        process=TimedProcess("outlet_reading", "gauge_stabilization", _gauge_reading("p2")),
        instruction="Attach a pressure gauge to the outlet port",
    ),
    HeadLossStep.CALCULATION: StepRule(
        step=HeadLossStep.CALCULATION,
        instruction="Calculate velocity, pressure drop, head loss and K",
    ),
}


# =============================================================================
# Calculations, record and summary
# =============================================================================

def calculation_steps(state: ProcedureState, config: AppConfig) -> list[formulas.Computation]:
    """Worked calculation from the recorded flow rate and gauge readings."""
    constants = config.constants
    velocity = formulas.velocity_from_flow_rate(state.get("flow_rate"), constants.pipe_area)
    delta_p = formulas.pressure_drop(state.get("p1"), state.get("p2"))
    loss = formulas.head_loss(delta_p.value, constants.water_density, constants.gravity)
    k = formulas.loss_coefficient(delta_p.value, constants.water_density, velocity.value)
    reynolds = formulas.reynolds_number(
        constants.water_density, velocity.value, constants.pipe_diameter, constants.water_viscosity
    )
    length = formulas.equivalent_length(k.value, constants.pipe_diameter, constants.darcy_friction_factor)
    return [velocity, delta_p, loss, k, reynolds, length]


def build_record(state: ProcedureState, deps: Dependencies) -> HeadLossRecord:
    velocity, delta_p, loss, k, reynolds, length = calculation_steps(state, deps.config)
    entry = deps.references.require(state.get("component"), state.get("condition"))
    checks = DEFINITION.validation_engine(deps).verify(entry, {
        "velocity": velocity.value,
        "pressure_drop": delta_p.value,
        "head_loss": loss.value,
        "loss_coefficient": k.value,
    })
    return HeadLossRecord(
        component=state.get("component"),
        flow_rate=state.get("flow_rate"),
        velocity=velocity.value,
        p1=state.get("p1"),
        p2=state.get("p2"),
        pressure_drop=delta_p.value,
        head_loss=loss.value,
        loss_coefficient=k.value,
        reynolds=reynolds.value,
        equivalent_length=length.value,
        is_verified=len(checks) == 4 and all(checks.values()),
    )


def summarize(state: ProcedureState, deps: Dependencies) -> dict:
    if not (state.has("p1") and state.has("p2")):
        return {}
    steps = calculation_steps(state, deps.config)
    reynolds = steps[4].value
    friction = formulas.friction_factor(reynolds)
    return {
        "component": state.get("component"),
        "condition": state.get("condition"),
        "steps": [
            {"label": s.label, "equation": s.equation, "value": s.value, "unit": s.unit}
            for s in steps
        ],
        "flow_regime": "laminar" if reynolds < formulas.LAMINAR_LIMIT else "turbulent",
        "friction_factor": friction.value,
    }


def load_references(config: AppConfig) -> ReferenceDataset:
    return ReferenceDataset.load(os.path.join(config.paths.data_dir, "minor_head_loss.json"))


ANSWERS = (
    AnswerField("velocity", ToleranceRule(RELATIVE, TOLERANCE), label="Velocity (m/s)"),
    AnswerField("pressure_drop", ToleranceRule(RELATIVE, TOLERANCE),
                prerequisite="velocity", label="ΔP (Pa)"),
    AnswerField("head_loss", ToleranceRule(RELATIVE, TOLERANCE),
                prerequisite="pressure_drop", label="Head loss (m)"),
    AnswerField("loss_coefficient", ToleranceRule(RELATIVE, TOLERANCE),
                prerequisite="head_loss", label="K"),
)


DEFINITION = ExperimentDefinition(
    name=NAME,
    title="Minor Head Loss",
    steps=HeadLossStep,
    rules=RULES,
    answers=ANSWERS,
    required_fields=("component", "condition", "flow_rate", "p1", "p2"),
    build_record=build_record,
    reference_key=lambda state: (state.get("component"), state.get("condition")),
    summarize=summarize,
    load_references=load_references,
)
