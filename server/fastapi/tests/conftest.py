import pytest
from unittest.mock import patch

from gemini import GenerationResult
from issues import InMemoryIssueStore
from models import Issue, IssueStatus, Location


class FakeWriter:
    """Captures stream events for assertion."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def events_of_type(self, event_type: str) -> list[dict]:
        return [e for e in self.events if e.get("type") == event_type]


class FakeGenerator:
    """Stands in for GeminiMapsClient and records every call."""

    def __init__(self, text: str = "Your issue is on its way.", grounding_metadata=None, error: Exception | None = None):
        self.text = text
        self.grounding_metadata = grounding_metadata
        self.error = error
        self.calls = []

    async def generate(self, prompt, location=None, *, cancel=None):
        self.calls.append({"prompt": prompt, "location": location, "cancel": cancel})
        if self.error is not None:
            raise self.error
        return GenerationResult(text=self.text, grounding_metadata=self.grounding_metadata)


def make_issue(
    issue_id: str = "CIV-1",
    title: str = "Pothole on Elm Street",
    status: IssueStatus = IssueStatus.PENDING,
    lat: float = 40.7128,
    lon: float = -74.006,
) -> Issue:
    return Issue(id=issue_id, title=title, location=Location(lat=lat, lon=lon), status=status)


def maps_metadata(*uris: str) -> dict:
    return {"grounding_chunks": [{"maps": {"uri": uri}} for uri in uris]}


@pytest.fixture
def writer():
    return FakeWriter()


@pytest.fixture
def mock_stream_writer(writer):
    """Patches get_stream_writer to return our FakeWriter."""
    with patch("graph.get_stream_writer", return_value=writer):
        yield writer


@pytest.fixture
def issue_store():
    return InMemoryIssueStore([
        make_issue("CIV-1", "Pothole on Elm Street", IssueStatus.PENDING),
        make_issue("CIV-2", "Broken streetlight", IssueStatus.IN_PROGRESS, 40.73, -73.98),
        make_issue("CIV-3", "Overflowing bins", IssueStatus.RESOLVED, 40.80, -73.97),
    ])


@pytest.fixture
def generator():
    return FakeGenerator()
