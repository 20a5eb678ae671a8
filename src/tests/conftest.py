"""
Shared test fixtures and utilities for lab engine tests.

This module provides:
- Config fixtures with an isolated export directory
- Reference dataset fixtures
- Session fixtures driven by a ManualScheduler
- Helpers that walk an experiment to its calculation step
"""

import os
import random
import shutil
import sys
import tempfile

import pytest

# Add src to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# =============================================================================
# Path Constants
# =============================================================================

SRC_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
ROOT_DIR = os.path.dirname(SRC_DIR)
DATA_DIR = os.path.join(SRC_DIR, "experiments", "data")
HEAD_LOSS_DATA = os.path.join(DATA_DIR, "minor_head_loss.json")
INPUTS_DIR = os.path.join(ROOT_DIR, "inputs")


# =============================================================================
# Fixtures: Temporary Files and Directories
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory that's cleaned up after the test."""
    tmpdir = tempfile.mkdtemp(prefix="labsim_test_")
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


# =============================================================================
# Fixtures: Config
# =============================================================================

@pytest.fixture
def app_config(temp_dir):
    """AppConfig with default timings and an export dir under temp_dir."""
    from config import AppConfig, PathConfig
    paths = PathConfig.from_defaults(ROOT_DIR)
    paths = PathConfig(
        root_dir=paths.root_dir,
        src_dir=paths.src_dir,
        inputs_dir=paths.inputs_dir,
        data_dir=paths.data_dir,
        export_dir=os.path.join(temp_dir, "exports"),
    )
    return AppConfig(paths=paths)


# =============================================================================
# Fixtures: Reference data
# =============================================================================

@pytest.fixture
def head_loss_dataset():
    from reference_data import ReferenceDataset
    return ReferenceDataset.load(HEAD_LOSS_DATA)


@pytest.fixture
def viscosity_dataset(app_config):
    from experiments.viscosity import build_dataset
    return build_dataset(app_config)


# =============================================================================
# Fixtures: Sessions
# =============================================================================

def make_session(name, config, seed=0, ledger=None):
    from experiments import get_experiment
    from procedure import Dependencies
    from session import LabSession
    from timers import ManualScheduler

    deps = Dependencies(config=config, rng=random.Random(seed))
    return LabSession(get_experiment(name), deps, scheduler=ManualScheduler(), ledger=ledger)


@pytest.fixture
def density_session(app_config):
    return make_session("mass_density", app_config)


@pytest.fixture
def head_loss_session(app_config):
    return make_session("minor_head_loss", app_config)


@pytest.fixture
def viscosity_session(app_config):
    return make_session("viscosity", app_config)


# =============================================================================
# Helper Functions
# =============================================================================

def run_density_procedure(session, vessel="volumetric-flask"):
    """Walk the mass density procedure to CALCULATION."""
    session.record_manual_value("oven_temperature", 105)
    session.record_manual_value("drying_time", 2)
    for station in ("drying-oven", "cooling-area", "weighing-scale", "water-tap", "weighing-scale"):
        result = session.attempt_transition(station, vessel)
        assert result.ok, result.message
        session.scheduler.run_all()
    return session


def run_head_loss_procedure(session, component="globe-valve", flow_rate=0.0002):
    """Walk the minor head loss procedure to CALCULATION."""
    from experiments.minor_head_loss import GAUGE_PORTS

    inlet, outlet = GAUGE_PORTS[component]
    assert session.attempt_transition("test-section", component).ok
    assert session.record_manual_value("flow_rate", flow_rate).ok
    assert session.advance().ok
    session.scheduler.run_all()
    assert session.attempt_transition(inlet, "pressure-gauge").ok
    session.scheduler.run_all()
    assert session.attempt_transition(outlet, "pressure-gauge").ok
    session.scheduler.run_all()
    return session


def run_viscosity_procedure(session, fluid="vegetable-oil", ball="D3"):
    """Walk the viscosity procedure to CALCULATION."""
    assert session.attempt_transition("fall-tube", fluid).ok
    assert session.advance().ok
    session.scheduler.run_all()
    assert session.attempt_transition("release-gate", ball).ok
    assert session.advance().ok
    session.scheduler.run_all()
    return session


@pytest.fixture
def completed_density(density_session):
    """Mass density session at CALCULATION with the volumetric flask."""
    return run_density_procedure(density_session)


@pytest.fixture
def completed_head_loss(head_loss_session):
    """Head loss session at CALCULATION for globe-valve/Q1."""
    return run_head_loss_procedure(head_loss_session)


@pytest.fixture
def completed_viscosity(viscosity_session):
    """Viscosity session at CALCULATION for vegetable-oil/D3."""
    return run_viscosity_procedure(viscosity_session)
