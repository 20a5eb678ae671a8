"""
LabSession: the engine boundary.

A session owns one experiment run at a time, the scheduler that drives its
timed processes, and the measurement ledger that outlives resets. It feeds
events to the pure reducer, carries out the commands the reducer returns,
and converts every LabError into a tagged EngineResult so that no engine
exception reaches the caller.

Usage:
    session = LabSession.create("mass_density", seed=7)
    session.record_manual_value("oven_temperature", 105)
    session.attempt_transition("drying-oven", "volumetric-flask")
    session.scheduler.run_all()
    print(session.snapshot())
"""

import random
from dataclasses import dataclass, replace
from typing import Any

from config import AppConfig, load_config
from errors import ErrorKind, LabError
from experiments import get_experiment
from ledger import MeasurementLedger
from logging_utils import get_logger
from procedure import (
    Advance,
    Dependencies,
    Drop,
    Event,
    ExperimentDefinition,
    ProcessCompleted,
    Reset,
    SetManualValue,
    SubmitAnswer,
    reduce,
)
from state import AppendRecord, CancelProcess, Command, ProcedureState, StartProcess
from timers import ManualScheduler, TimerHandle
from validation import ValidationResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class EngineResult:
    """
    Outcome of one session operation.

    ok is False for errors and for rejected drops; error is set only for
    errors. A failed answer check is ok=True with validation.is_within_tolerance False.
    An answer that passed but could not be recorded keeps its validation.
    """
    ok: bool
    error: ErrorKind | None = None
    message: str = ""
    validation: ValidationResult | None = None

    @classmethod
    def failure(cls, error: LabError, validation: ValidationResult | None = None) -> "EngineResult":
        return cls(ok=False, error=error.kind, message=error.message, validation=validation)


class LabSession:
    """Runs one experiment definition against a scheduler and a ledger."""

    def __init__(
        self,
        definition: ExperimentDefinition,
        deps: Dependencies,
        scheduler=None,
        ledger: MeasurementLedger | None = None,
    ):
        if deps.references is None and definition.load_references is not None:
            deps = replace(deps, references=definition.load_references(deps.config))
        self.definition = definition
        self.deps = deps
        self.scheduler = scheduler or ManualScheduler()
        self.ledger = ledger if ledger is not None else MeasurementLedger()
        self.state: ProcedureState = definition.initial_state()
        self._timers: dict[int, TimerHandle] = {}

    @classmethod
    def create(
        cls,
        experiment: str,
        config: AppConfig | None = None,
        seed: int | None = None,
        scheduler=None,
        ledger: MeasurementLedger | None = None,
    ) -> "LabSession":
        """Build a session for a registered experiment."""
        definition = get_experiment(experiment)
        deps = Dependencies(config=config or load_config(), rng=random.Random(seed))
        return cls(definition, deps, scheduler=scheduler, ledger=ledger)

    # =========================================================================
    # Operations
    # =========================================================================

    def dispatch(self, event: Event) -> EngineResult:
        """Reduce one event and carry out the resulting commands."""
        try:
            transition = reduce(self.definition, self.state, event, self.deps)
        except LabError as e:
            logger.info(f"{type(event).__name__} refused: [{e.kind.value}] {e.message}")
            return EngineResult.failure(e)

        self.state = transition.state
        try:
            self._execute(transition.commands)
        except LabError as e:
            logger.warning(f"Command failed: [{e.kind.value}] {e.message}")
            return EngineResult.failure(e, validation=transition.validation)

        return EngineResult(
            ok=transition.accepted,
            message=transition.message,
            validation=transition.validation,
        )

    def attempt_transition(self, station: str, vessel: str) -> EngineResult:
        return self.dispatch(Drop(station=station, vessel=vessel))

    def advance(self) -> EngineResult:
        return self.dispatch(Advance())

    def record_manual_value(self, field: str, value: float) -> EngineResult:
        return self.dispatch(SetManualValue(field=field, value=value))

    def submit_answer(self, field: str, value: float) -> EngineResult:
        return self.dispatch(SubmitAnswer(field=field, value=value))

    def reset(self) -> EngineResult:
        """Start the procedure over. Pending processes are cancelled; the ledger is kept."""
        return self.dispatch(Reset())

    # =========================================================================
    # Commands
    # =========================================================================

    def _execute(self, commands: tuple[Command, ...]) -> None:
        for command in commands:
            if isinstance(command, CancelProcess):
                handle = self._timers.pop(command.generation, None)
                if handle is not None:
                    handle.cancel()
            elif isinstance(command, StartProcess):
                self._timers[command.generation] = self.scheduler.call_later(
                    command.duration,
                    lambda generation=command.generation: self._complete(generation),
                    name=command.name,
                )
            elif isinstance(command, AppendRecord):
                try:
                    record = self.definition.build_record(self.state, self.deps)
                    self.ledger.append(record, self.definition, self.state)
                except LabError:
                    # Leave the run uncommitted so a resubmitted answer can append it
                    self.state = self.state.apply_update({"record_committed": False})
                    raise

    def _complete(self, generation: int) -> EngineResult:
        self._timers.pop(generation, None)
        return self.dispatch(ProcessCompleted(generation=generation))

    # =========================================================================
    # Views
    # =========================================================================

    def unlocked_field(self) -> str | None:
        if self.state.step != self.definition.terminal_step:
            return None
        engine = self.definition.validation_engine(self.deps)
        return engine.next_field(self.state.accepted_answers)

    def reference_answers(self) -> dict[str, float]:
        """
        Expected value of every answer for the current run ("show answers").

        Empty until the procedure reaches its terminal step.
        """
        if self.state.step != self.definition.terminal_step:
            return {}

        engine = self.definition.validation_engine(self.deps)
        answers: dict[str, float] = {}
        try:
            if self.definition.derive_reference is not None:
                entry = self.definition.derive_reference(self.state, self.deps)
            else:
                entry = engine.lookup(*self.definition.reference_key(self.state))
            for answer in engine.fields:
                answers[answer.name] = engine.expected(entry, answer.name, answers)
        except LabError as e:
            logger.info(f"Reference answers unavailable: [{e.kind.value}] {e.message}")
            return {}
        return answers

    def summary(self) -> dict[str, Any]:
        if self.definition.summarize is None:
            return {}
        try:
            return self.definition.summarize(self.state, self.deps)
        except LabError as e:
            logger.info(f"Summary unavailable: [{e.kind.value}] {e.message}")
            return {}

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict view of the session for rendering or JSON output."""
        state = self.state
        apparatus = state.apparatus
        return {
            "experiment": self.definition.name,
            "title": self.definition.title,
            "step": state.step.name,
            "instruction": self.definition.rule(state.step).instruction,
            "apparatus": {
                "selected_vessel": apparatus.selected_vessel,
                "location": apparatus.location,
                "thermal_status": apparatus.thermal_status.value,
                "temperature": apparatus.temperature,
            },
            "measurements": state.measurements,
            "accepted_answers": state.accepted_answers,
            "unlocked_field": self.unlocked_field(),
            "pending_process": state.pending_process,
            "generation": state.generation,
            "ledger": [record.to_dict() for record in self.ledger],
            "summary": self.summary(),
        }
