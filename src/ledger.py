"""
Measurement ledger: completed runs and their CSV export.

The ledger belongs to the session, not to a run, so resetting the
procedure never touches it. Only clear() empties it.
"""

import csv
import io
from dataclasses import dataclass, fields
from typing import Any, Callable, ClassVar, Iterator

from errors import IncompleteRecord
from logging_utils import get_logger

logger = get_logger(__name__)


def fixed(digits: int) -> Callable[[float], str]:
    """Fixed-point formatter with the given number of decimals."""
    return lambda value: f"{value:.{digits}f}"


def exponential(digits: int) -> Callable[[float], str]:
    """Exponential formatter with an unpadded exponent, e.g. 2.000e-4."""
    def _format(value: float) -> str:
        mantissa, exponent = f"{value:.{digits}e}".split("e")
        return f"{mantissa}e{int(exponent):+d}"
    return _format


def yes_no(value: bool) -> str:
    return "Yes" if value else "No"


@dataclass(frozen=True)
class Column:
    header: str
    attribute: str
    format: Callable[[Any], str] = str


@dataclass(frozen=True)
class MeasurementRecord:
    """Base class for ledger rows. Subclasses declare csv_columns."""
    csv_columns: ClassVar[tuple[Column, ...]] = ()

    @classmethod
    def csv_header(cls) -> list[str]:
        return [column.header for column in cls.csv_columns]

    def csv_row(self) -> list[str]:
        return [column.format(getattr(self, column.attribute)) for column in self.csv_columns]

    def missing_fields(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is None]

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class DensityRecord(MeasurementRecord):
    vessel: str
    temperature: float
    primary_mass: float
    secondary_mass: float
    nominal_volume: float
    derived_density: float

    csv_columns: ClassVar[tuple[Column, ...]] = (
        Column("Temperature (°C)", "temperature", fixed(1)),
        Column("M1 (g)", "primary_mass", fixed(3)),
        Column("M2 (g)", "secondary_mass", fixed(3)),
        Column("Volume (mL)", "nominal_volume", fixed(0)),
        Column("Density (g/mL)", "derived_density", fixed(4)),
    )


@dataclass(frozen=True)
class HeadLossRecord(MeasurementRecord):
    component: str
    flow_rate: float
    velocity: float
    p1: float
    p2: float
    pressure_drop: float
    head_loss: float
    loss_coefficient: float
    reynolds: float
    equivalent_length: float
    is_verified: bool

    csv_columns: ClassVar[tuple[Column, ...]] = (
        Column("Component", "component"),
        Column("Flow Rate (m³/s)", "flow_rate", exponential(3)),
        Column("Velocity (m/s)", "velocity", fixed(2)),
        Column("P₁ (Pa)", "p1", fixed(0)),
        Column("P₂ (Pa)", "p2", fixed(0)),
        Column("ΔP (Pa)", "pressure_drop", fixed(0)),
        Column("Head Loss (m)", "head_loss", fixed(4)),
        Column("K", "loss_coefficient", fixed(2)),
        Column("Reynolds", "reynolds", fixed(0)),
        Column("Eq. Length (m)", "equivalent_length", fixed(2)),
        Column("Verified", "is_verified", yes_no),
    )


@dataclass(frozen=True)
class ViscosityRecord(MeasurementRecord):
    fluid: str
    ball: str
    ball_diameter: float
    temperature: float
    terminal_velocity: float
    dynamic_viscosity: float
    kinematic_viscosity: float

    csv_columns: ClassVar[tuple[Column, ...]] = (
        Column("Fluid", "fluid"),
        Column("Ball", "ball"),
        Column("Diameter (m)", "ball_diameter", fixed(3)),
        Column("Temperature (°C)", "temperature", fixed(1)),
        Column("Terminal Velocity (m/s)", "terminal_velocity", fixed(4)),
        Column("Dynamic Viscosity (Pa·s)", "dynamic_viscosity", fixed(4)),
        Column("Kinematic Viscosity (m²/s)", "kinematic_viscosity", fixed(6)),
    )


class MeasurementLedger:
    """
    Append-only list of completed runs.

    Usage:
        ledger = MeasurementLedger()
        ledger.append(record, definition, state)
        text = ledger.export_csv()
    """

    def __init__(self):
        self._records: list[MeasurementRecord] = []

    def append(self, record: MeasurementRecord, definition, state) -> None:
        """
        Append a record for a finished run.

        Raises:
            IncompleteRecord: If the run is not at its terminal step, a
                required measurement is missing, or a record field is None.
        """
        if state.step != definition.terminal_step:
            raise IncompleteRecord(f"{definition.name} run is not complete ({state.step.name})")

        missing = [key for key in definition.required_fields if not state.recorded(key)]
        missing += record.missing_fields()
        if missing:
            raise IncompleteRecord(f"Missing measurements: {', '.join(missing)}")

        if self._records and type(self._records[0]) is not type(record):
            raise IncompleteRecord(
                f"Ledger holds {type(self._records[0]).__name__} rows, got {type(record).__name__}"
            )

        self._records.append(record)
        logger.info(f"Ledger record appended ({definition.name}, {len(self._records)} total)")

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[MeasurementRecord]:
        return iter(list(self._records))

    def clear(self) -> None:
        self._records.clear()

    def rows(self) -> list[list[str]]:
        return [record.csv_row() for record in self._records]

    def export_csv(self, record_type: type[MeasurementRecord] | None = None) -> str:
        """
        Render the ledger as CSV text: header line, then one line per record.

        record_type supplies the header when the ledger is empty.
        """
        record_type = record_type or (type(self._records[0]) if self._records else None)
        if record_type is None:
            return ""

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(record_type.csv_header())
        writer.writerows(self.rows())
        return buffer.getvalue().rstrip("\n")

    def write_csv(self, path: str, record_type: type[MeasurementRecord] | None = None) -> None:
        with open(path, 'w', encoding='utf-8', newline='') as f:
            f.write(self.export_csv(record_type) + "\n")
        logger.info(f"Wrote {len(self._records)} records to {path}")

    # Defined last: the name shadows the builtin inside the class body.
    def list(self) -> list[MeasurementRecord]:
        return list(self._records)
