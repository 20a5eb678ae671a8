"""
labsim: Guided-procedure lab engine.

Drives simulated laboratory experiments (mass density, minor head loss,
falling-ball viscosity) through an ordered procedure, validates the
student's calculated answers against reference data, and keeps a ledger
of completed runs.

Key design principles:
1. No global mutable state - all run state in ProcedureState
2. Explicit dependencies via Dependencies container
3. One parameterized state machine; experiments are configuration values
4. The reducer is pure and returns commands instead of performing effects

Modules:
- state.py: ProcedureState, ApparatusState, StateUpdate, commands
- procedure.py: ExperimentDefinition, StepRule, reduce()
- validation.py: ValidationEngine, ToleranceRule, AnswerField
- formulas.py: Physical formula library
- reference_data.py: ReferenceDataset loaded from JSON
- ledger.py: MeasurementLedger and CSV export
- timers.py: Manual and asyncio schedulers for timed processes
- session.py: LabSession engine boundary
- events.py: Wire event parsing
- config.py: Immutable AppConfig, TimingConfig, PhysicalConstants
- main.py: CLI and programmatic entry points
"""

from state import ProcedureState, ApparatusState, StateUpdate, ThermalStatus
from config import AppConfig, load_config
from errors import ErrorKind, LabError
from procedure import Dependencies, ExperimentDefinition, reduce
from validation import ValidationEngine, ValidationResult, ToleranceRule
from reference_data import ReferenceDataset, ReferenceEntry
from ledger import MeasurementLedger
from session import LabSession, EngineResult
from experiments import EXPERIMENTS, get_experiment
from main import run_script

__all__ = [
    # State
    "ProcedureState",
    "ApparatusState",
    "StateUpdate",
    "ThermalStatus",
    # Config
    "AppConfig",
    "load_config",
    # Errors
    "ErrorKind",
    "LabError",
    # Procedure
    "Dependencies",
    "ExperimentDefinition",
    "reduce",
    # Validation
    "ValidationEngine",
    "ValidationResult",
    "ToleranceRule",
    # Reference data
    "ReferenceDataset",
    "ReferenceEntry",
    # Ledger
    "MeasurementLedger",
    # Session
    "LabSession",
    "EngineResult",
    # Experiments
    "EXPERIMENTS",
    "get_experiment",
    # Main
    "run_script",
]
