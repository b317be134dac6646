from typing import Any, Literal, TypedDict


class VisitEvent(TypedDict):
    type: Literal["visit"]
    visit: dict[str, Any]
    timestamp: str


# All events published on the visit channel
TrackerEvent = VisitEvent
