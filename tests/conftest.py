# tests/conftest.py

import pytest

from flowstate.core.event import Event


class EventTrace:
    """Handler that records the path of every event it receives."""

    def __init__(self):
        self.events = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    @property
    def paths(self):
        return [event.path for event in self.events]


@pytest.fixture
def trace():
    """A fresh EventTrace handler."""
    return EventTrace()


@pytest.fixture
def wizard_events():
    """A four step wizard: intro > settings > summary > final."""
    return [
        "next: intro > settings > summary",
        "back: summary > settings > intro",
        {"name": "finish", "from": "summary", "to": "final"},
        {"name": "restart", "from": "summary", "to": "intro"},
    ]


@pytest.fixture
def wizard_config(wizard_events):
    """Configuration mapping for the wizard machine."""
    return {"events": wizard_events, "final": "final"}
