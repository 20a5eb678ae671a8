"""
Experiment registry.

Each module defines one ExperimentDefinition; the engine itself has no
experiment-specific code.
"""

from experiments.mass_density import DEFINITION as MASS_DENSITY
from experiments.minor_head_loss import DEFINITION as MINOR_HEAD_LOSS
from experiments.viscosity import DEFINITION as VISCOSITY

EXPERIMENTS = {
    MASS_DENSITY.name: MASS_DENSITY,
    MINOR_HEAD_LOSS.name: MINOR_HEAD_LOSS,
    VISCOSITY.name: VISCOSITY,
}


def get_experiment(name: str):
    """Look up a definition by name (dashes and underscores are interchangeable)."""
    key = name.replace("-", "_")
    if key not in EXPERIMENTS:
        raise KeyError(f"Unknown experiment: {name!r} (available: {', '.join(sorted(EXPERIMENTS))})")
    return EXPERIMENTS[key]


__all__ = ["EXPERIMENTS", "MASS_DENSITY", "MINOR_HEAD_LOSS", "VISCOSITY", "get_experiment"]
