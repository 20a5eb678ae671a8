"""
AppConfig: Immutable application configuration.

This module contains ONLY static configuration that doesn't change during a session.
All runtime state belongs in ProcedureState (see state.py).

Design principles:
- Frozen dataclasses prevent accidental mutation
- Configuration loaded once at startup
- Environment variables can override config file values
- No global mutable state
"""

import os
import json
from dataclasses import dataclass, field

from logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PathConfig:
    """Immutable path configuration."""
    root_dir: str
    src_dir: str
    inputs_dir: str
    data_dir: str
    export_dir: str

    @classmethod
    def from_defaults(cls, root_dir: str | None = None) -> "PathConfig":
        """Create PathConfig with default paths based on root directory."""
        src_dir = os.path.dirname(os.path.abspath(__file__))
        if root_dir is None:
            root_dir = os.path.dirname(src_dir)

        return cls(
            root_dir=root_dir,
            src_dir=src_dir,
            inputs_dir=os.path.join(root_dir, "inputs"),
            data_dir=os.path.join(src_dir, "experiments", "data"),
            export_dir=os.path.join(root_dir, "exports"),
        )


@dataclass(frozen=True)
class TimingConfig:
    """
    Durations (seconds) of the simulated timed processes.

    time_scale multiplies every duration; 0 makes processes complete
    on the next scheduler tick.
    """
    drying: float = 6.5
    cooling: float = 6.0
    weighing: float = 3.0
    final_weighing: float = 4.0
    filling: float = 4.0
    pump_priming: float = 2.0
    gauge_stabilization: float = 1.5
    thermal_equilibration: float = 3.0
    ball_release: float = 5.0
    time_scale: float = 1.0

    def duration(self, name: str) -> float:
        """Scaled duration for a named process."""
        base = getattr(self, name, None)
        if not isinstance(base, (int, float)) or name == "time_scale":
            raise KeyError(f"Unknown timed process: {name!r}")
        return float(base) * self.time_scale


@dataclass(frozen=True)
class PhysicalConstants:
    """Constants shared by the formula library and the experiments."""
    gravity: float = 9.81                       # m/s²
    water_density: float = 998.0                # kg/m³, head-loss rig
    reference_water_density: float = 0.9982     # g/mL at 20 °C
    pipe_area: float = 9.33e-5                  # m²
    pipe_diameter: float = 0.0109               # m
    water_viscosity: float = 0.001              # Pa·s
    darcy_friction_factor: float = 0.02
    fall_distance: float = 1.0                  # m, marked section of the fall tube


@dataclass(frozen=True)
class AppConfig:
    """
    Complete immutable application configuration.

    Create once at startup and pass to functions that need it.
    tolerance_overrides maps "experiment.field" to {"mode": ..., "value": ...}.
    """
    paths: PathConfig
    timing: TimingConfig = TimingConfig()
    constants: PhysicalConstants = PhysicalConstants()
    tolerance_overrides: tuple[tuple[str, tuple[str, float]], ...] = field(default_factory=tuple)
    log_level: str = "INFO"

    def tolerance_override(self, experiment: str, field_name: str) -> tuple[str, float] | None:
        """Return the (mode, value) override for a field, if configured."""
        return dict(self.tolerance_overrides).get(f"{experiment}.{field_name}")


def load_config(config_path: str | None = None) -> AppConfig:
    """
    Load configuration from JSON file and environment variables.

    Priority: Environment variables > Config file > Defaults

    Args:
        config_path: Path to JSON config file. If None, uses default location.

    Returns:
        Immutable AppConfig instance.
    """
    paths = PathConfig.from_defaults()

    if config_path is None:
        config_path = os.path.join(paths.inputs_dir, "labsim_config.json")

    config_data = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")

    timing_data = config_data.get("timing", {})
    time_scale = float(os.environ.get(
        "LABSIM_TIME_SCALE",
        timing_data.get("time_scale", TimingConfig.time_scale),
    ))
    timing = TimingConfig(**{
        **{k: float(v) for k, v in timing_data.items() if k in TimingConfig.__dataclass_fields__},
        "time_scale": time_scale,
    })

    constants_data = config_data.get("constants", {})
    constants = PhysicalConstants(**{
        k: float(v) for k, v in constants_data.items()
        if k in PhysicalConstants.__dataclass_fields__
    })

    overrides = []
    for key, rule in config_data.get("tolerances", {}).items():
        overrides.append((key, (rule.get("mode", "relative"), float(rule["value"]))))

    if "export_dir" in config_data:
        paths = PathConfig(
            root_dir=paths.root_dir,
            src_dir=paths.src_dir,
            inputs_dir=paths.inputs_dir,
            data_dir=paths.data_dir,
            export_dir=config_data["export_dir"],
        )

    return AppConfig(
        paths=paths,
        timing=timing,
        constants=constants,
        tolerance_overrides=tuple(overrides),
        log_level=os.environ.get("LABSIM_LOG_LEVEL", config_data.get("log_level", "INFO")),
    )


def ensure_directories(config: AppConfig) -> None:
    """Ensure the export directory exists."""
    if not os.path.exists(config.paths.export_dir):
        os.makedirs(config.paths.export_dir)
        logger.info(f"Created directory: {config.paths.export_dir}")
