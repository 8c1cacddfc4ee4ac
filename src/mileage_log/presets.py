from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

from .models import EntryForm

Distance = Literal["one_way", "round"]


@dataclass(frozen=True)
class TripMileage:
    one_way: float
    round: float

    def miles_for(self, distance: Distance) -> float:
        if distance == "one_way":
            return self.one_way
        if distance == "round":
            return self.round
        raise ValueError(f"Unknown distance option: {distance}")


PRESET_TRIPS: dict[str, TripMileage] = {
    "Roos <-> Wash": TripMileage(one_way=2.2, round=4.4),
    "Roos <-> Kerp": TripMileage(one_way=0.3, round=0.6),
    "Wash <-> Roos": TripMileage(one_way=2.2, round=4.4),
    "Wash <-> Kerp": TripMileage(one_way=2.0, round=4.0),
    "Kerp <-> Roos": TripMileage(one_way=0.3, round=0.6),
    "Kerp <-> Wash": TripMileage(one_way=2.0, round=4.0),
}


def apply_preset(form: EntryForm, name: str, distance: Distance = "round") -> EntryForm:
    """Fill the trip and miles fields of ``form`` from a named preset route."""
    preset = PRESET_TRIPS[name]
    return replace(form, trip=name, miles=str(preset.miles_for(distance)))
