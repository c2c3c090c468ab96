from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float


class IssueStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    location: Location
    status: IssueStatus


Sender = Literal["user", "bot"]


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    sender: Sender
    text: str


class GroundingSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str


# --- Request/Response Models ---


class StatusRequest(BaseModel):
    issue_id: str
    location: Location | None = None  # Optional browser geolocation


class ChatResponse(BaseModel):
    response: str


class CreateSessionRequest(BaseModel):
    location: Location | None = None
    location_error: str | None = None  # Reported by the browser when geolocation fails


class SubmitRequest(BaseModel):
    text: str


class MessageView(BaseModel):
    sender: Sender
    text: str
    html: str


class SessionView(BaseModel):
    session_id: str
    busy: bool
    messages: list[MessageView]
    accepted: bool | None = None


class SummaryResponse(BaseModel):
    summary: str
