"""
Procedure state machine.

One generic machine drives every experiment. An ExperimentDefinition is
plain configuration: the ordered steps, the rule for each step (legal
stations, accepted items, preconditions, timed process, manual fields),
the answer chain and how to build the ledger record. reduce() is a pure
function from (definition, state, event, deps) to a Transition holding
the next state and the commands the caller must carry out.

Event contract per step:
- Placement steps (stations set) accept drops only
- Steps with an AdvanceRule accept advance only
- Steps with manual fields accept setManualValue only
- The terminal step accepts submitAnswer only
"""

import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Mapping

from config import AppConfig
from errors import IncompletePrecondition, InvalidSetupValue
from logging_utils import get_logger
from reference_data import ReferenceDataset, ReferenceEntry
from state import (
    ApparatusState,
    AppendRecord,
    CancelProcess,
    Command,
    ProcedureState,
    StartProcess,
    StateUpdate,
)
from validation import ABSOLUTE, AnswerField, ToleranceRule, ValidationEngine, ValidationResult

logger = get_logger(__name__)


@dataclass
class Dependencies:
    """
    All external dependencies for the reducer.

    Injected once per session. Tests pass a seeded rng.
    """
    config: AppConfig
    references: ReferenceDataset | None = None
    rng: random.Random = field(default_factory=random.Random)


Predicate = Callable[[ProcedureState], bool]
Effect = Callable[[ProcedureState, Dependencies], StateUpdate]


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class Drop:
    """Apparatus item dragged onto a station."""
    station: str
    vessel: str


@dataclass(frozen=True)
class Advance:
    """Direct click on a step that has no placement."""


@dataclass(frozen=True)
class SetManualValue:
    field: str
    value: float


@dataclass(frozen=True)
class SubmitAnswer:
    field: str
    value: float


@dataclass(frozen=True)
class ProcessCompleted:
    """Completion callback of the timed process started under generation."""
    generation: int


@dataclass(frozen=True)
class Reset:
    """Return to the initial step. The ledger is not affected."""


Event = Drop | Advance | SetManualValue | SubmitAnswer | ProcessCompleted | Reset


# =============================================================================
# Experiment configuration
# =============================================================================

@dataclass(frozen=True)
class TimedProcess:
    """
    A physical process that runs for a configured duration.

    timing_key names a TimingConfig attribute. on_complete returns the
    measurements produced when the process finishes.
    """
    name: str
    timing_key: str
    on_complete: Effect


@dataclass(frozen=True)
class ManualField:
    """
    A numeric value typed in directly.

    Either required (one fixed constant) or choices (one of a closed set)
    is set. on_accept derives extra updates from the accepted value.
    """
    name: str
    required: float | None = None
    choices: tuple[float, ...] = ()
    tolerance: ToleranceRule = ToleranceRule(ABSOLUTE, 0.0)
    on_accept: Callable[[float], StateUpdate] | None = None

    def accepts(self, value: float) -> bool:
        if self.required is not None:
            return self.tolerance.accepts(value, self.required)
        return any(self.tolerance.accepts(value, choice) for choice in self.choices)

    def describe(self) -> str:
        if self.required is not None:
            return f"{self.name} must be {self.required:g}"
        return f"{self.name} must be one of " + ", ".join(f"{c:g}" for c in self.choices)


@dataclass(frozen=True)
class AdvanceRule:
    """Click-to-advance gate: measurement keys that must be recorded first."""
    requires: tuple[str, ...] = ()


@dataclass(frozen=True)
class StepRule:
    """
    What a step accepts.

    stations is either a fixed set or a function of state (for stations
    that depend on an earlier choice). item_field, when set, records the
    dropped item as a measurement instead of selecting it as the vessel.
    """
    step: Enum
    stations: frozenset[str] | Callable[[ProcedureState], frozenset[str]] = frozenset()
    items: frozenset[str] = frozenset()
    lock_vessel: bool = False
    item_field: str | None = None
    precondition: Predicate | None = None
    on_drop: Callable[[ProcedureState, str], StateUpdate] | None = None
    process: TimedProcess | None = None
    manual_fields: tuple[ManualField, ...] = ()
    advance: AdvanceRule | None = None
    instruction: str = ""

    def legal_stations(self, state: ProcedureState) -> frozenset[str]:
        if callable(self.stations):
            return frozenset(self.stations(state))
        return self.stations

    def manual_field(self, name: str) -> ManualField | None:
        for manual in self.manual_fields:
            if manual.name == name:
                return manual
        return None


@dataclass(frozen=True)
class ExperimentDefinition:
    """
    Configuration value describing one experiment.

    reference_key returns the (component, condition) pair used to look up
    answers in the dataset. derive_reference, when set, builds the entry
    from the run's own measurements instead.
    """
    name: str
    title: str
    steps: type[Enum]
    rules: Mapping[Enum, StepRule]
    answers: tuple[AnswerField, ...]
    required_fields: tuple[str, ...]
    build_record: Callable[[ProcedureState, Dependencies], Any]
    reference_key: Callable[[ProcedureState], tuple[str, str]] | None = None
    derive_reference: Callable[[ProcedureState, Dependencies], ReferenceEntry] | None = None
    summarize: Callable[[ProcedureState, Dependencies], dict[str, Any]] | None = None
    load_references: Callable[[AppConfig], ReferenceDataset] | None = None

    @property
    def order(self) -> list[Enum]:
        return list(self.steps)

    @property
    def initial_step(self) -> Enum:
        return self.order[0]

    @property
    def terminal_step(self) -> Enum:
        return self.order[-1]

    def next_step(self, step: Enum) -> Enum:
        order = self.order
        index = order.index(step)
        return order[min(index + 1, len(order) - 1)]

    def rule(self, step: Enum) -> StepRule:
        return self.rules.get(step) or StepRule(step=step)

    def initial_state(self, generation: int = 0) -> ProcedureState:
        return ProcedureState(
            experiment=self.name,
            step=self.initial_step,
            apparatus=ApparatusState(),
            generation=generation,
        )

    def answer_fields(self, config: AppConfig) -> tuple[AnswerField, ...]:
        """Answer chain with configured tolerance overrides applied."""
        resolved = []
        for answer in self.answers:
            override = config.tolerance_override(self.name, answer.name)
            if override is not None:
                mode, value = override
                answer = replace(answer, tolerance=ToleranceRule(mode, value))
            resolved.append(answer)
        return tuple(resolved)

    def validation_engine(self, deps: Dependencies) -> ValidationEngine:
        return ValidationEngine(self.answer_fields(deps.config), deps.references)


@dataclass(frozen=True)
class Transition:
    """Result of reducing one event."""
    state: ProcedureState
    commands: tuple[Command, ...] = ()
    accepted: bool = True
    validation: ValidationResult | None = None
    message: str = ""


# =============================================================================
# Reducer
# =============================================================================

def reduce(
    definition: ExperimentDefinition,
    state: ProcedureState,
    event: Event,
    deps: Dependencies,
) -> Transition:
    """
    Apply one event to the state.

    Raises:
        IncompletePrecondition: advance, manual value or answer not allowed now.
        InvalidSetupValue: manual value outside its rule.
        NoReferenceData, DivideByZero, UndefinedResult: from answer checking.
    """
    if isinstance(event, Drop):
        return _reduce_drop(definition, state, event, deps)
    if isinstance(event, Advance):
        return _reduce_advance(definition, state, deps)
    if isinstance(event, SetManualValue):
        return _reduce_manual_value(definition, state, event)
    if isinstance(event, SubmitAnswer):
        return _reduce_answer(definition, state, event, deps)
    if isinstance(event, ProcessCompleted):
        return _reduce_completion(definition, state, event, deps)
    if isinstance(event, Reset):
        return _reduce_reset(definition, state)
    raise TypeError(f"Unknown event: {event!r}")


def _advance_step(definition: ExperimentDefinition, state: ProcedureState) -> ProcedureState:
    next_step = definition.next_step(state.step)
    logger.debug(f"{definition.name}: {state.step.name} -> {next_step.name}")
    return state.apply_update({"step": next_step})


def _start_process(
    state: ProcedureState,
    process: TimedProcess,
    deps: Dependencies,
) -> tuple[ProcedureState, tuple[Command, ...]]:
    commands: list[Command] = []
    if state.pending_process is not None:
        commands.append(CancelProcess(state.generation))
    generation = state.generation + 1
    duration = deps.config.timing.duration(process.timing_key)
    commands.append(StartProcess(process.name, duration, generation))
    logger.debug(f"Starting {process.name} ({duration:g}s, generation {generation})")
    new_state = state.apply_update({"generation": generation, "pending_process": process.name})
    return new_state, tuple(commands)


def _reject(state: ProcedureState, message: str) -> Transition:
    logger.debug(f"Drop rejected: {message}")
    return Transition(state=state, accepted=False, message=message)


def _reduce_drop(
    definition: ExperimentDefinition,
    state: ProcedureState,
    event: Drop,
    deps: Dependencies,
) -> Transition:
    rule = definition.rule(state.step)

    if event.station not in rule.legal_stations(state):
        return _reject(state, f"{event.station} is not a legal station for {state.step.name}")
    if rule.items and event.vessel not in rule.items:
        return _reject(state, f"{event.vessel} cannot be used at {state.step.name}")
    if rule.lock_vessel and event.vessel != state.apparatus.selected_vessel:
        return _reject(state, f"{event.vessel} is not the selected vessel")
    if rule.precondition is not None and not rule.precondition(state):
        return _reject(state, f"precondition for {state.step.name} not met")

    update: StateUpdate = {"location": event.station}
    if rule.item_field is not None:
        update[rule.item_field] = event.vessel
    else:
        update["selected_vessel"] = event.vessel
    if rule.on_drop is not None:
        update.update(rule.on_drop(state, event.vessel))
    new_state = state.apply_update(update)

    if rule.process is not None:
        new_state, commands = _start_process(new_state, rule.process, deps)
        return Transition(state=new_state, commands=commands)

    return Transition(state=_advance_step(definition, new_state))


def _reduce_advance(
    definition: ExperimentDefinition,
    state: ProcedureState,
    deps: Dependencies,
) -> Transition:
    rule = definition.rule(state.step)
    if rule.advance is None:
        raise IncompletePrecondition(f"{state.step.name} cannot be advanced directly")
    if state.pending_process is not None:
        raise IncompletePrecondition(f"{state.pending_process} is still in progress")

    missing = [key for key in rule.advance.requires if not state.has(key)]
    if missing:
        raise IncompletePrecondition(f"Missing before {state.step.name}: {', '.join(missing)}")

    if rule.process is not None:
        new_state, commands = _start_process(state, rule.process, deps)
        return Transition(state=new_state, commands=commands)

    return Transition(state=_advance_step(definition, state))


def _reduce_manual_value(
    definition: ExperimentDefinition,
    state: ProcedureState,
    event: SetManualValue,
) -> Transition:
    rule = definition.rule(state.step)
    manual = rule.manual_field(event.field)
    if manual is None:
        raise IncompletePrecondition(f"{event.field!r} cannot be set at {state.step.name}")
    if not manual.accepts(event.value):
        raise InvalidSetupValue(f"{manual.describe()} (got {event.value:g})")

    update: StateUpdate = {event.field: event.value}
    if manual.on_accept is not None:
        update.update(manual.on_accept(event.value))
    new_state = state.apply_update(update)

    if all(new_state.has(m.name) for m in rule.manual_fields):
        new_state = _advance_step(definition, new_state)
    return Transition(state=new_state)


def _reduce_answer(
    definition: ExperimentDefinition,
    state: ProcedureState,
    event: SubmitAnswer,
    deps: Dependencies,
) -> Transition:
    if state.step != definition.terminal_step:
        raise IncompletePrecondition("Answers can only be submitted once the procedure is complete")

    engine = definition.validation_engine(deps)
    accepted = state.accepted_answers
    if definition.derive_reference is not None:
        entry = definition.derive_reference(state, deps)
        result = engine.check(entry, event.field, event.value, accepted)
    else:
        component, condition = definition.reference_key(state)
        result = engine.validate(component, condition, event.field, event.value, accepted)

    if not result.is_within_tolerance:
        return Transition(state=state, validation=result)

    new_state = state
    if event.field in accepted and accepted[event.field] != event.value:
        # Answers checked against the old value no longer hold
        new_state = new_state.without_answers(engine.dependents(event.field))
    new_state = new_state.with_answer(event.field, event.value)
    commands: tuple[Command, ...] = ()
    all_accepted = all(new_state.is_accepted(a.name) for a in definition.answers)
    if all_accepted and not new_state.record_committed:
        new_state = new_state.apply_update({"record_committed": True})
        commands = (AppendRecord(),)
    return Transition(state=new_state, commands=commands, validation=result)


def _reduce_completion(
    definition: ExperimentDefinition,
    state: ProcedureState,
    event: ProcessCompleted,
    deps: Dependencies,
) -> Transition:
    if event.generation != state.generation or state.pending_process is None:
        logger.debug(
            f"Ignoring stale completion (generation {event.generation}, current {state.generation})"
        )
        return Transition(state=state, accepted=False, message="stale completion")

    rule = definition.rule(state.step)
    update: StateUpdate = {}
    if rule.process is not None:
        update.update(rule.process.on_complete(state, deps))
    update["pending_process"] = None
    new_state = state.apply_update(update)
    logger.debug(f"{state.pending_process} complete")
    return Transition(state=_advance_step(definition, new_state))


def _reduce_reset(definition: ExperimentDefinition, state: ProcedureState) -> Transition:
    generation = state.generation + 1
    logger.debug(f"{definition.name}: reset (generation {generation})")
    return Transition(
        state=definition.initial_state(generation=generation),
        commands=(CancelProcess(state.generation),),
    )
