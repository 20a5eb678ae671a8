"""
Dynamic viscosity by the falling-ball method.

A steel ball is released into a tube of fluid and timed over a marked
distance once it has reached terminal velocity. Stokes' law relates the
terminal velocity to the fluid's dynamic viscosity.
"""

from dataclasses import dataclass
from enum import Enum, auto

import formulas
from config import AppConfig
from ledger import ViscosityRecord
from procedure import (
    AdvanceRule,
    Dependencies,
    ExperimentDefinition,
    StepRule,
    TimedProcess,
)
from reference_data import ReferenceDataset, ReferenceEntry
from state import ProcedureState, StateUpdate, ThermalStatus
from validation import RELATIVE, AnswerField, ToleranceRule

NAME = "viscosity"

BALL_DENSITY = 7800.0      # kg/m³, steel
BATH_TEMPERATURE = 20.0    # °C
TOLERANCE = 0.02


@dataclass(frozen=True)
class Fluid:
    id: str
    name: str
    density: float     # kg/m³
    viscosity: float   # Pa·s at 20 °C


@dataclass(frozen=True)
class Ball:
    id: str
    label: str
    diameter: float    # m
    density: float = BALL_DENSITY


FLUIDS: dict[str, Fluid] = {
    "water": Fluid("water", "Water", 998.2, 0.001002),
    "vegetable-oil": Fluid("vegetable-oil", "Vegetable Oil", 920.0, 0.069),
}

BALLS: dict[str, Ball] = {
    "D1": Ball("D1", "40 mm steel ball", 0.04),
    "D2": Ball("D2", "30 mm steel ball", 0.03),
    "D3": Ball("D3", "20 mm steel ball", 0.02),
    "D4": Ball("D4", "15 mm steel ball", 0.015),
}


class ViscosityStep(Enum):
    FLUID_SELECTION = auto()
    THERMAL_EQUILIBRATION = auto()
    BALL_SELECTION = auto()
    RELEASE = auto()
    CALCULATION = auto()


def build_dataset(config: AppConfig | None = None) -> ReferenceDataset:
    """Reference values for every (ball, fluid) pair from Stokes' law."""
    gravity = config.constants.gravity if config else 9.81
    entries = []
    for ball in BALLS.values():
        for fluid in FLUIDS.values():
            velocity = formulas.terminal_velocity_stokes(
                ball.diameter, ball.density, fluid.density, fluid.viscosity, gravity
            ).value
            entries.append(ReferenceEntry.create(
                component=ball.id,
                condition=fluid.id,
                values={
                    "terminal_velocity": velocity,
                    "dynamic_viscosity": fluid.viscosity,
                    "kinematic_viscosity": formulas.kinematic_viscosity(
                        fluid.viscosity, fluid.density
                    ).value,
                },
                inputs={
                    "ball_diameter": ball.diameter,
                    "ball_density": ball.density,
                    "fluid_density": fluid.density,
                    "gravity": gravity,
                },
            ))
    return ReferenceDataset.from_entries(entries, name=NAME)


# =============================================================================
# Process effects
# =============================================================================

def _equilibrated(state: ProcedureState, deps: Dependencies) -> StateUpdate:
    return {"temperature": BATH_TEMPERATURE}


def _fallen(state: ProcedureState, deps: Dependencies) -> StateUpdate:
    entry = deps.references.require(state.get("ball"), state.get("fluid"))
    velocity = entry["terminal_velocity"]
    distance = deps.config.constants.fall_distance
    return {"fall_time": distance / velocity, "measured_velocity": velocity}


RULES = {
    ViscosityStep.FLUID_SELECTION: StepRule(
        step=ViscosityStep.FLUID_SELECTION,
        stations=frozenset({"fall-tube"}),
        items=frozenset(FLUIDS),
        item_field="fluid",
        on_drop=lambda state, item: {"thermal_status": ThermalStatus.FILLED},
        instruction="Fill the fall tube with a test fluid",
    ),
    ViscosityStep.THERMAL_EQUILIBRATION: StepRule(
        step=ViscosityStep.THERMAL_EQUILIBRATION,
        advance=AdvanceRule(requires=("fluid",)),
        process=TimedProcess("thermal_equilibration", "thermal_equilibration", _equilibrated),
        instruction="Let the fluid reach bath temperature",
    ),
    ViscosityStep.BALL_SELECTION: StepRule(
        step=ViscosityStep.BALL_SELECTION,
        stations=frozenset({"release-gate"}),
        items=frozenset(BALLS),
        item_field="ball",
        instruction="Load a ball into the release gate",
    ),
    ViscosityStep.RELEASE: StepRule(
        step=ViscosityStep.RELEASE,
        advance=AdvanceRule(requires=("fluid", "ball")),
        process=TimedProcess("ball_release", "ball_release", _fallen),
        instruction="Release the ball and time its fall",
    ),
    ViscosityStep.CALCULATION: StepRule(
        step=ViscosityStep.CALCULATION,
        instruction="Calculate terminal velocity, dynamic and kinematic viscosity",
    ),
}


# =============================================================================
# Answers, record and summary
# =============================================================================

def _selected(state: ProcedureState) -> tuple[Ball, Fluid]:
    return BALLS[state.get("ball")], FLUIDS[state.get("fluid")]


def build_record(state: ProcedureState, deps: Dependencies) -> ViscosityRecord:
    ball, fluid = _selected(state)
    accepted = state.accepted_answers
    return ViscosityRecord(
        fluid=fluid.id,
        ball=ball.id,
        ball_diameter=ball.diameter,
        temperature=state.apparatus.temperature,
        terminal_velocity=accepted.get("terminal_velocity"),
        dynamic_viscosity=accepted.get("dynamic_viscosity"),
        kinematic_viscosity=accepted.get("kinematic_viscosity"),
    )


def summarize(state: ProcedureState, deps: Dependencies) -> dict:
    if not state.has("measured_velocity"):
        return {}
    ball, fluid = _selected(state)
    velocity = state.get("measured_velocity")
    mu = formulas.viscosity_from_terminal_velocity(
        velocity, ball.diameter, ball.density, fluid.density, deps.config.constants.gravity
    )
    reynolds = formulas.reynolds_number(fluid.density, velocity, ball.diameter, mu.value)
    return {
        "fluid": fluid.name,
        "ball": ball.label,
        "fall_time": state.get("fall_time"),
        "terminal_velocity": velocity,
        "dynamic_viscosity": mu.value,
        "equation": mu.equation,
        "ball_reynolds": reynolds.value,
    }


def _viscosity_from_velocity(accepted, entry: ReferenceEntry) -> float:
    return formulas.viscosity_from_terminal_velocity(
        accepted["terminal_velocity"],
        entry.input("ball_diameter"),
        entry.input("ball_density"),
        entry.input("fluid_density"),
        entry.input("gravity"),
    ).value


def _kinematic_from_viscosity(accepted, entry: ReferenceEntry) -> float:
    return formulas.kinematic_viscosity(
        accepted["dynamic_viscosity"], entry.input("fluid_density")
    ).value


def load_references(config: AppConfig) -> ReferenceDataset:
    return build_dataset(config)


ANSWERS = (
    AnswerField("terminal_velocity", ToleranceRule(RELATIVE, TOLERANCE), label="Terminal velocity (m/s)"),
    AnswerField(
        "dynamic_viscosity",
        ToleranceRule(RELATIVE, TOLERANCE),
        prerequisite="terminal_velocity",
        expected_from=_viscosity_from_velocity,
        label="Dynamic viscosity (Pa·s)",
    ),
    AnswerField(
        "kinematic_viscosity",
        ToleranceRule(RELATIVE, TOLERANCE),
        prerequisite="dynamic_viscosity",
        expected_from=_kinematic_from_viscosity,
        label="Kinematic viscosity (m²/s)",
    ),
)


DEFINITION = ExperimentDefinition(
    name=NAME,
    title="Dynamic Viscosity",
    steps=ViscosityStep,
    rules=RULES,
    answers=ANSWERS,
    required_fields=("fluid", "ball", "temperature", "fall_time", "measured_velocity"),
    build_record=build_record,
    reference_key=lambda state: (state.get("ball"), state.get("fluid")),
    summarize=summarize,
    load_references=load_references,
)
