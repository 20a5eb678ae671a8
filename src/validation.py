"""
Validation engine: compare submitted answers with reference values.

Answers form a chain. Each field names the field that must be accepted
before it (its prerequisite), so the first field is the only one open at
the start and every pass unlocks the next. A failed check is an ordinary
result, not an error, and retries are unlimited.
"""

import math
from dataclasses import dataclass
from typing import Callable, Mapping

from errors import IncompletePrecondition, NoReferenceData
from logging_utils import get_logger
from reference_data import ReferenceDataset, ReferenceEntry

logger = get_logger(__name__)

RELATIVE = "relative"
ABSOLUTE = "absolute"

# Slack applied on top of the tolerance band so that values sitting exactly
# on the boundary survive floating-point rounding.
BOUNDARY_SLACK = 1e-9


@dataclass(frozen=True)
class ToleranceRule:
    """Relative (fraction of |expected|) or absolute tolerance band."""
    mode: str = RELATIVE
    value: float = 0.0

    def __post_init__(self):
        if self.mode not in (RELATIVE, ABSOLUTE):
            raise ValueError(f"Unknown tolerance mode: {self.mode!r}")
        if self.value < 0:
            raise ValueError("Tolerance must be non-negative")

    def bound(self, expected: float) -> float:
        if self.mode == RELATIVE:
            return self.value * abs(expected)
        return self.value

    def accepts(self, submitted: float, expected: float) -> bool:
        """Inclusive check |submitted - expected| <= bound."""
        diff = abs(submitted - expected)
        bound = self.bound(expected)
        return diff <= bound or math.isclose(diff, bound, rel_tol=BOUNDARY_SLACK)


@dataclass(frozen=True)
class AnswerField:
    """
    One answer in the chain.

    expected_from derives the expected value from previously accepted
    answers and the reference entry; without it the expected value is read from the reference entry.
    """
    name: str
    tolerance: ToleranceRule
    prerequisite: str | None = None
    expected_from: Callable[[Mapping[str, float], ReferenceEntry | None], float] | None = None
    label: str = ""


@dataclass(frozen=True)
class ValidationResult:
    field_name: str
    submitted_value: float
    is_within_tolerance: bool
    next_unlocked_field: str | None = None
    expected_value: float | None = None


class ValidationEngine:
    """
    Checks answers against a reference entry.

    Usage:
        engine = ValidationEngine(fields, dataset)
        result = engine.validate("globe-valve", "Q1", "velocity", 2.30, {})
    """

    def __init__(self, fields: tuple[AnswerField, ...], dataset: ReferenceDataset | None = None):
        self.fields = tuple(fields)
        self.dataset = dataset
        self._by_name = {f.name: f for f in self.fields}

    def field(self, name: str) -> AnswerField:
        try:
            return self._by_name[name]
        except KeyError:
            raise IncompletePrecondition(f"Unknown answer field: {name!r}") from None

    def next_field(self, accepted: Mapping[str, float]) -> str | None:
        """First field in chain order that is not accepted yet but whose prerequisite is."""
        for answer in self.fields:
            if answer.name in accepted:
                continue
            if answer.prerequisite is None or answer.prerequisite in accepted:
                return answer.name
        return None

    def dependents(self, field_name: str) -> list[str]:
        """Fields whose prerequisite chain passes through field_name."""
        chain = {field_name}
        found = []
        for answer in self.fields:
            if answer.prerequisite in chain:
                chain.add(answer.name)
                found.append(answer.name)
        return found

    def expected(self, entry: ReferenceEntry | None, field_name: str, accepted: Mapping[str, float]) -> float:
        answer = self.field(field_name)
        if answer.expected_from is not None:
            return answer.expected_from(accepted, entry)
        if entry is None or field_name not in entry:
            raise IncompletePrecondition(f"No expected value available for {field_name!r}")
        return entry[field_name]

    def check(
        self,
        entry: ReferenceEntry | None,
        field_name: str,
        submitted: float,
        accepted: Mapping[str, float],
    ) -> ValidationResult:
        """
        Check one submitted answer.

        Raises:
            IncompletePrecondition: If the field's prerequisite is not accepted yet.
        """
        answer = self.field(field_name)
        if answer.prerequisite is not None and answer.prerequisite not in accepted:
            raise IncompletePrecondition(
                f"{field_name!r} is locked until {answer.prerequisite!r} is accepted"
            )

        expected = self.expected(entry, field_name, accepted)
        passed = answer.tolerance.accepts(submitted, expected)

        next_unlocked = None
        if passed:
            next_unlocked = self.next_field({**accepted, field_name: submitted})

        logger.debug(
            f"{field_name}: submitted={submitted} expected={expected} "
            f"{'pass' if passed else 'fail'}"
        )
        return ValidationResult(
            field_name=field_name,
            submitted_value=submitted,
            is_within_tolerance=passed,
            next_unlocked_field=next_unlocked,
            expected_value=expected,
        )

    def validate(
        self,
        component: str,
        condition: str,
        field_name: str,
        submitted: float,
        accepted: Mapping[str, float],
    ) -> ValidationResult:
        """
        Look up the reference entry for (component, condition) and check an answer.

        Raises:
            NoReferenceData: If the dataset has no entry for the pair.
            IncompletePrecondition: If the field is still locked.
        """
        entry = self.lookup(component, condition)
        return self.check(entry, field_name, submitted, accepted)

    def lookup(self, component: str, condition: str) -> ReferenceEntry:
        if self.dataset is None:
            logger.error(f"No reference dataset loaded; cannot look up {component}/{condition}")
            raise NoReferenceData(component, condition)
        try:
            return self.dataset.require(component, condition)
        except NoReferenceData:
            logger.error(f"No reference data for component={component} condition={condition}")
            raise

    def verify(self, entry: ReferenceEntry, values: Mapping[str, float]) -> dict[str, bool]:
        """
        Check computed values against an entry without chain gating.

        Fields without a reference value in the entry are skipped.
        """
        results = {}
        for name, value in values.items():
            answer = self._by_name.get(name)
            if answer is None or name not in entry:
                continue
            results[name] = answer.tolerance.accepts(value, entry[name])
        return results
