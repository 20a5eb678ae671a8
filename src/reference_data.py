"""
Reference data: expected answers keyed by (component, condition).

The dataset is the ground truth used by the validation engine. It is
loaded once (from JSON, or generated from a catalogue) and never mutated;
with_entry() returns a new dataset.

Design principles:
- Immutable dataset loaded once
- No global state
- Pure functions for querying
"""

import json
import os
from dataclasses import dataclass, field
from typing import Iterator

from pydantic import BaseModel, Field

from errors import NoReferenceData
from logging_utils import get_logger

logger = get_logger(__name__)


class _EntryDocument(BaseModel):
    component: str
    condition: str
    inputs: dict[str, float] = Field(default_factory=dict)
    values: dict[str, float]


class _DatasetDocument(BaseModel):
    experiment: str
    entries: list[_EntryDocument]


@dataclass(frozen=True)
class ReferenceEntry:
    """Expected values for one component under one condition."""
    component: str
    condition: str
    values: tuple[tuple[str, float], ...] = field(default_factory=tuple)
    inputs: tuple[tuple[str, float], ...] = field(default_factory=tuple)

    @classmethod
    def create(
        cls,
        component: str,
        condition: str,
        values: dict[str, float],
        inputs: dict[str, float] | None = None,
    ) -> "ReferenceEntry":
        return cls(
            component=component,
            condition=condition,
            values=tuple(values.items()),
            inputs=tuple((inputs or {}).items()),
        )

    @property
    def key(self) -> tuple[str, str]:
        return (self.component, self.condition)

    def __getitem__(self, field_name: str) -> float:
        return dict(self.values)[field_name]

    def __contains__(self, field_name: str) -> bool:
        return field_name in dict(self.values)

    def get(self, field_name: str, default: float | None = None) -> float | None:
        return dict(self.values).get(field_name, default)

    def input(self, name: str, default: float | None = None) -> float | None:
        """Raw input (flow rate, gauge pressures, ...) behind this entry."""
        return dict(self.inputs).get(name, default)

    def fields(self) -> list[str]:
        return [name for name, _ in self.values]


class ReferenceDataset:
    """
    Read-only table of reference entries.

    Usage:
        dataset = ReferenceDataset.load("experiments/data/minor_head_loss.json")
        entry = dataset.require("globe-valve", "Q1")
        expected = entry["velocity"]
    """

    def __init__(self, entries: dict[tuple[str, str], ReferenceEntry], name: str = ""):
        """
        Initialize dataset.

        Args:
            entries: Mapping of (component, condition) to entry.
            name: Experiment the dataset belongs to (for logging).
        """
        self._entries = dict(entries)
        self.name = name

    @classmethod
    def from_entries(cls, entries: list[ReferenceEntry], name: str = "") -> "ReferenceDataset":
        return cls({entry.key: entry for entry in entries}, name=name)

    @classmethod
    def load(cls, path: str) -> "ReferenceDataset":
        """
        Load a dataset from a JSON document.

        Raises:
            FileNotFoundError: If the file does not exist.
            pydantic.ValidationError: If the document is malformed.
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"Reference data not found at {path}")

        with open(path, 'r', encoding='utf-8') as f:
            document = _DatasetDocument.model_validate(json.load(f))

        entries = [
            ReferenceEntry.create(e.component, e.condition, e.values, e.inputs)
            for e in document.entries
        ]
        logger.debug(f"Loaded {len(entries)} reference entries for {document.experiment}")
        return cls.from_entries(entries, name=document.experiment)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ReferenceEntry]:
        return iter(self._entries.values())

    def lookup(self, component: str, condition: str) -> ReferenceEntry | None:
        """Get the entry for a pair, or None."""
        return self._entries.get((component, condition))

    def require(self, component: str, condition: str) -> ReferenceEntry:
        """
        Get the entry for a pair.

        Raises:
            NoReferenceData: If the pair is not in the dataset.
        """
        entry = self.lookup(component, condition)
        if entry is None:
            raise NoReferenceData(component, condition)
        return entry

    def with_entry(self, entry: ReferenceEntry) -> "ReferenceDataset":
        """Return a new dataset with the entry added or replaced."""
        entries = dict(self._entries)
        entries[entry.key] = entry
        return ReferenceDataset(entries, name=self.name)

    def components(self) -> set[str]:
        return {component for component, _ in self._entries}

    def conditions(self, component: str) -> list[str]:
        """Conditions recorded for a component, in load order."""
        return [condition for c, condition in self._entries if c == component]
