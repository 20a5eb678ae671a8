"""
Tests for ledger.py module.

Tests:
- Column formatters
- Record CSV rows
- MeasurementLedger.append guards
- CSV export
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import IncompleteRecord
from experiments.mass_density import DEFINITION as DENSITY, MassDensityStep
from ledger import (
    DensityRecord,
    HeadLossRecord,
    MeasurementLedger,
    ViscosityRecord,
    exponential,
    fixed,
    yes_no,
)
from state import ProcedureState


def density_record(**overrides):
    values = dict(
        vessel="volumetric-flask",
        temperature=22.4,
        primary_mass=150.0,
        secondary_mass=249.82,
        nominal_volume=100.0,
        derived_density=0.9982,
    )
    values.update(overrides)
    return DensityRecord(**values)


def head_loss_record(**overrides):
    values = dict(
        component="globe-valve",
        flow_rate=0.0002,
        velocity=2.1436,
        p1=350000,
        p2=207000,
        pressure_drop=143000,
        head_loss=14.6061,
        loss_coefficient=62.24,
        reynolds=23317.4,
        equivalent_length=33.92,
        is_verified=False,
    )
    values.update(overrides)
    return HeadLossRecord(**values)


@pytest.fixture
def finished_state():
    return ProcedureState(experiment="mass_density", step=MassDensityStep.CALCULATION).apply_update({
        "temperature": 22.4,
        "m1": 150.0,
        "m2": 249.82,
    })


# =============================================================================
# Test Formatters
# =============================================================================

class TestFormatters:
    """Tests for CSV cell formatters."""

    def test_fixed(self):
        assert fixed(4)(0.99820001) == "0.9982"
        assert fixed(0)(100.0) == "100"
        assert fixed(1)(22.45) in ("22.4", "22.5")

    @pytest.mark.parametrize("value,expected", [
        (0.0002, "2.000e-4"),
        (0.0005, "5.000e-4"),
        (12340.0, "1.234e+4"),
        (1.5, "1.500e+0"),
    ])
    def test_exponential_unpadded(self, value, expected):
        assert exponential(3)(value) == expected

    def test_yes_no(self):
        assert yes_no(True) == "Yes"
        assert yes_no(False) == "No"


# =============================================================================
# Test Records
# =============================================================================

class TestRecords:
    """Tests for record rows and dict views."""

    def test_density_header(self):
        assert DensityRecord.csv_header() == [
            "Temperature (°C)", "M1 (g)", "M2 (g)", "Volume (mL)", "Density (g/mL)",
        ]

    def test_density_row(self):
        assert density_record().csv_row() == ["22.4", "150.000", "249.820", "100", "0.9982"]

    def test_head_loss_row(self):
        assert head_loss_record().csv_row() == [
            "globe-valve", "2.000e-4", "2.14", "350000", "207000", "143000",
            "14.6061", "62.24", "23317", "33.92", "No",
        ]

    def test_viscosity_row(self):
        record = ViscosityRecord(
            fluid="vegetable-oil",
            ball="D3",
            ball_diameter=0.02,
            temperature=20.0,
            terminal_velocity=0.21737,
            dynamic_viscosity=0.069,
            kinematic_viscosity=0.069 / 920,
        )
        assert record.csv_row() == [
            "vegetable-oil", "D3", "0.020", "20.0", "0.2174", "0.0690", "0.000075",
        ]

    def test_missing_fields(self):
        assert density_record(derived_density=None).missing_fields() == ["derived_density"]
        assert density_record().missing_fields() == []

    def test_to_dict(self):
        data = density_record().to_dict()
        assert data["vessel"] == "volumetric-flask"
        assert data["secondary_mass"] == 249.82
        assert "csv_columns" not in data


# =============================================================================
# Test MeasurementLedger
# =============================================================================

class TestAppend:
    """Tests for MeasurementLedger.append guards."""

    def test_append_complete_record(self, finished_state):
        ledger = MeasurementLedger()
        ledger.append(density_record(), DENSITY, finished_state)
        assert len(ledger) == 1
        assert ledger.list() == [density_record()]

    def test_unfinished_run_rejected(self, finished_state):
        ledger = MeasurementLedger()
        state = finished_state.apply_update({"step": MassDensityStep.FILLING})
        with pytest.raises(IncompleteRecord):
            ledger.append(density_record(), DENSITY, state)
        assert len(ledger) == 0

    def test_missing_measurement_rejected(self):
        ledger = MeasurementLedger()
        state = ProcedureState(step=MassDensityStep.CALCULATION).apply_update({
            "temperature": 22.4,
            "m1": 150.0,
        })
        with pytest.raises(IncompleteRecord) as exc_info:
            ledger.append(density_record(), DENSITY, state)
        assert "m2" in exc_info.value.message

    def test_missing_temperature_rejected(self):
        ledger = MeasurementLedger()
        state = ProcedureState(step=MassDensityStep.CALCULATION).apply_update({"m1": 150.0, "m2": 249.82})
        with pytest.raises(IncompleteRecord):
            ledger.append(density_record(), DENSITY, state)

    def test_none_record_field_rejected(self, finished_state):
        ledger = MeasurementLedger()
        with pytest.raises(IncompleteRecord):
            ledger.append(density_record(derived_density=None), DENSITY, finished_state)

    def test_mixed_record_types_rejected(self, finished_state):
        ledger = MeasurementLedger()
        ledger.append(density_record(), DENSITY, finished_state)
        with pytest.raises(IncompleteRecord):
            ledger.append(head_loss_record(), DENSITY, finished_state)

    def test_clear(self, finished_state):
        ledger = MeasurementLedger()
        ledger.append(density_record(), DENSITY, finished_state)
        ledger.clear()
        assert len(ledger) == 0

    def test_iteration_is_a_copy(self, finished_state):
        ledger = MeasurementLedger()
        ledger.append(density_record(), DENSITY, finished_state)
        for _ in ledger:
            ledger.append(density_record(temperature=23.0), DENSITY, finished_state)
        assert len(ledger) == 2


class TestExport:
    """Tests for CSV export."""

    def test_empty_ledger(self):
        assert MeasurementLedger().export_csv() == ""

    def test_empty_ledger_with_type_has_header(self):
        assert MeasurementLedger().export_csv(DensityRecord) == (
            "Temperature (°C),M1 (g),M2 (g),Volume (mL),Density (g/mL)"
        )

    def test_density_csv(self, finished_state):
        ledger = MeasurementLedger()
        ledger.append(density_record(), DENSITY, finished_state)
        ledger.append(density_record(temperature=24.0, derived_density=0.9973), DENSITY, finished_state)
        assert ledger.export_csv() == "\n".join([
            "Temperature (°C),M1 (g),M2 (g),Volume (mL),Density (g/mL)",
            "22.4,150.000,249.820,100,0.9982",
            "24.0,150.000,249.820,100,0.9973",
        ])

    def test_head_loss_csv_header(self):
        text = MeasurementLedger().export_csv(HeadLossRecord)
        assert text == (
            "Component,Flow Rate (m³/s),Velocity (m/s),P₁ (Pa),P₂ (Pa),ΔP (Pa),"
            "Head Loss (m),K,Reynolds,Eq. Length (m),Verified"
        )

    def test_write_csv(self, finished_state, temp_dir):
        ledger = MeasurementLedger()
        ledger.append(density_record(), DENSITY, finished_state)
        path = os.path.join(temp_dir, "density.csv")
        ledger.write_csv(path)
        with open(path, encoding="utf-8") as f:
            content = f.read()
        assert content == ledger.export_csv() + "\n"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
