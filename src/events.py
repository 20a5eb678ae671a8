"""
Input events as they arrive from a UI or an event script.

Each wire event is a JSON object tagged by "type". parse_event validates it
with pydantic and converts it to the reducer's event dataclass, so
malformed input fails here and never reaches the state machine.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from procedure import Advance, Drop, Event, Reset, SetManualValue, SubmitAnswer


class DropEvent(BaseModel):
    type: Literal["drop"]
    station: str = Field(description="Target station identifier")
    vessel: str = Field(description="Dragged apparatus item")

    def to_event(self) -> Event:
        return Drop(station=self.station, vessel=self.vessel)


class AdvanceEvent(BaseModel):
    type: Literal["advance"]

    def to_event(self) -> Event:
        return Advance()


class SetManualValueEvent(BaseModel):
    type: Literal["setManualValue"]
    field: str
    value: float

    def to_event(self) -> Event:
        return SetManualValue(field=self.field, value=self.value)


class SubmitAnswerEvent(BaseModel):
    type: Literal["submitAnswer"]
    field: str
    value: float

    def to_event(self) -> Event:
        return SubmitAnswer(field=self.field, value=self.value)


class ResetEvent(BaseModel):
    type: Literal["reset"]

    def to_event(self) -> Event:
        return Reset()


class WaitEvent(BaseModel):
    """Script-only event: let simulated time pass (seconds, or until idle)."""
    type: Literal["wait"]
    seconds: float | None = None


WireEvent = Annotated[
    Union[DropEvent, AdvanceEvent, SetManualValueEvent, SubmitAnswerEvent, ResetEvent, WaitEvent],
    Field(discriminator="type"),
]

_adapter = TypeAdapter(WireEvent)
_script_adapter = TypeAdapter(list[WireEvent])


def parse_wire_event(data: Any) -> BaseModel:
    """
    Validate one wire event.

    Raises:
        pydantic.ValidationError: Unknown type or missing/invalid fields.
    """
    return _adapter.validate_python(data)


def parse_event(data: Any) -> Event:
    """Validate one wire event and convert it to a reducer event."""
    wire = parse_wire_event(data)
    if isinstance(wire, WaitEvent):
        raise ValueError("wait events are only meaningful in event scripts")
    return wire.to_event()


def parse_script(data: Any) -> list[BaseModel]:
    """Validate a list of wire events (an event script)."""
    return _script_adapter.validate_python(data)
