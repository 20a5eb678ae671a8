"""
ProcedureState: Single source of truth for one run of a guided experiment.

Design:
- ProcedureState is frozen (immutable) to prevent accidental mutation
- All updates create new instances via apply_update()
- Measurements live in a tuple-of-pairs store so the whole state stays hashable
- The reducer in procedure.py is the only producer of new states
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, TypeVar, TypedDict


T = TypeVar("T")


class ThermalStatus(str, Enum):
    """Physical condition of the selected apparatus."""
    HOT = "hot"
    COOL = "cool"
    FILLED = "filled"
    NONE = "none"


class StateUpdate(TypedDict, total=False):
    """
    Partial state update returned by drop handlers and process completions.

    Keys naming an ApparatusState or ProcedureState field replace that field;
    any other key is stored as a measurement.
    """
    # Apparatus
    selected_vessel: str | None
    location: str
    thermal_status: ThermalStatus
    temperature: float | None

    # Procedure
    step: Enum
    pending_process: str | None
    generation: int
    record_committed: bool

    # Common measurements
    m1: float
    m2: float
    p1: float
    p2: float


@dataclass(frozen=True)
class ApparatusState:
    """Where the apparatus is and what condition it is in."""
    selected_vessel: str | None = None
    location: str = "none"
    thermal_status: ThermalStatus = ThermalStatus.NONE
    temperature: float | None = None


_APPARATUS_FIELDS = frozenset(f.name for f in fields(ApparatusState))


@dataclass(frozen=True)
class ProcedureState:
    """
    Immutable state for a single experiment run.

    Design principles:
    - All state is in one place
    - Updates create new instances (immutable)
    - A rejected event returns the very same instance
    - generation identifies the timed process currently allowed to complete
    """

    # === Identification ===
    experiment: str = ""
    step: Enum | None = None

    # === Apparatus ===
    apparatus: ApparatusState = field(default_factory=ApparatusState)

    # === Timed processes ===
    generation: int = 0
    pending_process: str | None = None

    # === Results ===
    accepted: tuple[tuple[str, float], ...] = field(default_factory=tuple)
    record_committed: bool = False

    # === Measurement Store ===
    # Note: tuple is used for immutability; convert to dict when accessing
    _measurements: tuple[tuple[str, Any], ...] = field(default_factory=tuple)

    def get(self, key: str, default: T = None) -> T:
        """Get a recorded measurement."""
        return dict(self._measurements).get(key, default)

    def has(self, key: str) -> bool:
        """Check whether a measurement has been recorded."""
        return any(k == key for k, _ in self._measurements)

    def recorded(self, key: str) -> bool:
        """True if key is a recorded measurement or a populated apparatus attribute."""
        if key in _APPARATUS_FIELDS:
            return getattr(self.apparatus, key) is not None
        return self.has(key)

    @property
    def measurements(self) -> dict[str, Any]:
        return dict(self._measurements)

    @property
    def accepted_answers(self) -> dict[str, float]:
        return dict(self.accepted)

    def is_accepted(self, field_name: str) -> bool:
        return any(k == field_name for k, _ in self.accepted)

    def with_answer(self, field_name: str, value: float) -> "ProcedureState":
        """Return a new state with an accepted answer recorded."""
        answers = dict(self.accepted)
        answers[field_name] = value
        return replace(self, accepted=tuple(answers.items()))

    def without_answers(self, field_names) -> "ProcedureState":
        """Return a new state with the named accepted answers dropped."""
        dropped = set(field_names)
        return replace(self, accepted=tuple((k, v) for k, v in self.accepted if k not in dropped))

    def apply_update(self, update: StateUpdate) -> "ProcedureState":
        """
        Apply a partial update to the state.

        This is the only way state should be modified during a run.

        Args:
            update: Dictionary of field names to new values.

        Returns:
            New ProcedureState with updates applied.
        """
        apparatus_updates = {}
        field_updates = {}
        store_updates = {}

        for key, value in update.items():
            if key in _APPARATUS_FIELDS:
                apparatus_updates[key] = value
            elif key in _STATE_FIELDS:
                field_updates[key] = value
            else:
                store_updates[key] = value

        new_state = self
        if apparatus_updates:
            field_updates["apparatus"] = replace(self.apparatus, **apparatus_updates)
        if field_updates:
            new_state = replace(new_state, **field_updates)

        if store_updates:
            store_dict = dict(new_state._measurements)
            store_dict.update(store_updates)
            new_state = replace(new_state, _measurements=tuple(store_dict.items()))

        return new_state


_STATE_FIELDS = frozenset(f.name for f in fields(ProcedureState) if not f.name.startswith("_"))


# =============================================================================
# Commands emitted by the reducer
# =============================================================================

@dataclass(frozen=True)
class StartProcess:
    """Schedule completion of a timed process after duration seconds."""
    name: str
    duration: float
    generation: int


@dataclass(frozen=True)
class CancelProcess:
    """Cancel the timed process started under generation."""
    generation: int


@dataclass(frozen=True)
class AppendRecord:
    """Append the finished run to the measurement ledger."""


Command = StartProcess | CancelProcess | AppendRecord
