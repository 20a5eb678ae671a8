"""
Mass density of water by weighing a dried flask before and after filling.

The flask is dried in the oven, cooled to room temperature, weighed
empty (m1), filled to its nominal volume and weighed again (m2). The
expected density is computed from the run's own masses, so there is no
static reference table for this experiment.
"""

from dataclasses import dataclass
from enum import Enum, auto

import formulas
from ledger import DensityRecord
from procedure import (
    Dependencies,
    ExperimentDefinition,
    ManualField,
    StepRule,
    TimedProcess,
)
from reference_data import ReferenceEntry
from state import ProcedureState, StateUpdate, ThermalStatus
from validation import RELATIVE, AnswerField, ToleranceRule

NAME = "mass_density"

OVEN_TEMPERATURE = 105.0
DRYING_TIME = 2.0
ROOM_TEMPERATURE = 20.0
ROOM_TEMPERATURE_SPREAD = 5.0
MASS_UNCERTAINTY = 0.001  # g


class MassDensityStep(Enum):
    OVEN_SETUP = auto()
    DRYING = auto()
    COOLING = auto()
    WEIGHING = auto()
    FILLING = auto()
    FINAL_WEIGHING = auto()
    CALCULATION = auto()


@dataclass(frozen=True)
class Vessel:
    kind: str
    label: str
    nominal_volume: float       # mL of water used
    empty_mass: float           # g
    volume_uncertainty: float   # mL

    def filled_mass(self, temperature: float) -> float:
        """Scale reading with the flask filled at the given water temperature."""
        if self.kind == "volumetric-flask":
            return 249.82
        water_density = 0.998 - 0.0002 * (temperature - ROOM_TEMPERATURE)
        return self.empty_mass + self.nominal_volume * water_density


VESSELS: dict[str, Vessel] = {
    "volumetric-flask": Vessel("volumetric-flask", "100-mL Volumetric Flask", 100.0, 150.0, 0.08),
    "erlenmeyer-flask": Vessel("erlenmeyer-flask", "250-mL Erlenmeyer Flask", 150.0, 300.0, 0.1),
}
VESSEL_KINDS = frozenset(VESSELS)


# =============================================================================
# Process effects
# =============================================================================

def _dried(state: ProcedureState, deps: Dependencies) -> StateUpdate:
    return {"thermal_status": ThermalStatus.HOT, "temperature": OVEN_TEMPERATURE}


def _cooled(state: ProcedureState, deps: Dependencies) -> StateUpdate:
    room = ROOM_TEMPERATURE + deps.rng.random() * ROOM_TEMPERATURE_SPREAD
    return {"thermal_status": ThermalStatus.COOL, "temperature": round(room, 1)}


def _weighed_empty(state: ProcedureState, deps: Dependencies) -> StateUpdate:
    return {"m1": VESSELS[state.apparatus.selected_vessel].empty_mass}


def _filled(state: ProcedureState, deps: Dependencies) -> StateUpdate:
    return {"thermal_status": ThermalStatus.FILLED}


def _weighed_full(state: ProcedureState, deps: Dependencies) -> StateUpdate:
    vessel = VESSELS[state.apparatus.selected_vessel]
    return {"m2": vessel.filled_mass(state.apparatus.temperature)}


def _status_is(status: ThermalStatus):
    return lambda state: state.apparatus.thermal_status == status


RULES = {
    MassDensityStep.OVEN_SETUP: StepRule(
        step=MassDensityStep.OVEN_SETUP,
        manual_fields=(
            ManualField("oven_temperature", required=OVEN_TEMPERATURE),
            ManualField("drying_time", required=DRYING_TIME),
        ),
        instruction="Set the oven to 105 °C for 2 hours",
    ),
    MassDensityStep.DRYING: StepRule(
        step=MassDensityStep.DRYING,
        stations=frozenset({"drying-oven"}),
        items=VESSEL_KINDS,
        process=TimedProcess("drying", "drying", _dried),
        instruction="Place the flask in the drying oven",
    ),
    MassDensityStep.COOLING: StepRule(
        step=MassDensityStep.COOLING,
        stations=frozenset({"cooling-area"}),
        items=VESSEL_KINDS,
        lock_vessel=True,
        precondition=_status_is(ThermalStatus.HOT),
        process=TimedProcess("cooling", "cooling", _cooled),
        instruction="Move the hot flask to the cooling area",
    ),
    MassDensityStep.WEIGHING: StepRule(
        step=MassDensityStep.WEIGHING,
        stations=frozenset({"weighing-scale"}),
        items=VESSEL_KINDS,
        lock_vessel=True,
        precondition=_status_is(ThermalStatus.COOL),
        process=TimedProcess("weighing", "weighing", _weighed_empty),
        instruction="Weigh the empty flask (m1)",
    ),
    MassDensityStep.FILLING: StepRule(
        step=MassDensityStep.FILLING,
        stations=frozenset({"water-tap"}),
        items=VESSEL_KINDS,
        lock_vessel=True,
        precondition=lambda state: (
            state.apparatus.thermal_status == ThermalStatus.COOL and state.has("m1")
        ),
        process=TimedProcess("filling", "filling", _filled),
        instruction="Fill the flask to the mark at the water tap",
    ),
    MassDensityStep.FINAL_WEIGHING: StepRule(
        step=MassDensityStep.FINAL_WEIGHING,
        stations=frozenset({"weighing-scale"}),
        items=VESSEL_KINDS,
        lock_vessel=True,
        precondition=_status_is(ThermalStatus.FILLED),
        process=TimedProcess("final_weighing", "final_weighing", _weighed_full),
        instruction="Weigh the filled flask (m2)",
    ),
    MassDensityStep.CALCULATION: StepRule(
        step=MassDensityStep.CALCULATION,
        instruction="Calculate density, specific weight and specific gravity",
    ),
}


# =============================================================================
# Answers, record and summary
# =============================================================================

def measured_density(state: ProcedureState) -> float:
    vessel = VESSELS[state.apparatus.selected_vessel]
    return formulas.density(state.get("m2"), state.get("m1"), vessel.nominal_volume).value


def derive_reference(state: ProcedureState, deps: Dependencies) -> ReferenceEntry:
    return ReferenceEntry.create(
        component=state.apparatus.selected_vessel,
        condition=f"{state.apparatus.temperature}",
        values={"density": measured_density(state)},
        inputs={"m1": state.get("m1"), "m2": state.get("m2")},
    )


def build_record(state: ProcedureState, deps: Dependencies) -> DensityRecord:
    vessel = VESSELS[state.apparatus.selected_vessel]
    return DensityRecord(
        vessel=vessel.kind,
        temperature=state.apparatus.temperature,
        primary_mass=state.get("m1"),
        secondary_mass=state.get("m2"),
        nominal_volume=vessel.nominal_volume,
        derived_density=state.accepted_answers.get("density"),
    )


def summarize(state: ProcedureState, deps: Dependencies) -> dict:
    """Density analysis shown once both masses are known."""
    if not (state.has("m1") and state.has("m2")):
        return {}

    vessel = VESSELS[state.apparatus.selected_vessel]
    temperature = state.apparatus.temperature
    raw = measured_density(state)
    corrected = formulas.temperature_corrected_density(
        raw, temperature, deps.config.constants.reference_water_density
    )
    standard_temp, standard_density = formulas.closest_standard_density(temperature)
    water_mass = state.get("m2") - state.get("m1")

    return {
        "vessel": vessel.label,
        "water_mass": water_mass,
        "density": raw,
        "corrected_density": corrected.value,
        "uncertainty": formulas.density_uncertainty(
            water_mass, vessel.nominal_volume, MASS_UNCERTAINTY, vessel.volume_uncertainty
        ),
        "standard_temperature": standard_temp,
        "standard_density": standard_density,
        "percent_error": formulas.percent_error(raw, standard_density),
    }


ANSWERS = (
    AnswerField("density", ToleranceRule(RELATIVE, 0.001), label="Density (g/mL)"),
    AnswerField(
        "specific_weight",
        ToleranceRule(RELATIVE, 0.001),
        prerequisite="density",
        expected_from=lambda accepted, entry: formulas.specific_weight(accepted["density"]).value,
        label="Specific weight (kN/m³)",
    ),
    AnswerField(
        "specific_gravity",
        ToleranceRule(RELATIVE, 0.001),
        prerequisite="specific_weight",
        expected_from=lambda accepted, entry: formulas.specific_gravity(accepted["density"]).value,
        label="Specific gravity",
    ),
)


DEFINITION = ExperimentDefinition(
    name=NAME,
    title="Mass Density",
    steps=MassDensityStep,
    rules=RULES,
    answers=ANSWERS,
    required_fields=("temperature", "m1", "m2"),
    build_record=build_record,
    derive_reference=derive_reference,
    summarize=summarize,
)
