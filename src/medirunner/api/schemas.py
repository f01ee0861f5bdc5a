"""Pydantic request/response schemas for the face gate API.

Field names are camelCase on the wire to match the console front end.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserOut(ApiModel):
    """A console user as exposed to clients; never includes the descriptor."""

    id: int
    name: str
    role: str
    face_enrolled: bool
    face_enrolled_at: datetime | None = None


class CreateUserRequest(ApiModel):
    name: str = Field(min_length=1, max_length=128)
    role: str = Field(min_length=1, max_length=64)


class CreateUserResponse(ApiModel):
    ok: bool = True
    user: UserOut


class UsersResponse(ApiModel):
    ok: bool = True
    users: list[UserOut]


class EnrollRequest(ApiModel):
    user_id: int
    face_descriptor: list[float] = Field(description="Face embedding (128 floats)")


class EnrollResponse(ApiModel):
    ok: bool = True
    message: str = "Face enrolled successfully"
    enrolled_at: datetime
    replaced: bool


class EnrollmentStatusResponse(ApiModel):
    ok: bool = True
    enrolled: bool
    enrolled_at: datetime | None = None


class RecognizeRequest(ApiModel):
    face_descriptor: list[float] = Field(description="Probe face embedding (128 floats)")


class RecognizeResponse(ApiModel):
    """Outcome of a match attempt.

    ``confidence`` is ``round((1 - distance) * 100)`` and is not clamped, so it
    can be negative for distant probes. It is 0 when nobody is enrolled.
    """

    ok: bool = True
    matched: bool
    identity_id: int | None = None
    user: UserOut | None = None
    confidence: int
    distance: float | None = None
    error: str | None = None


class EnrolledUser(ApiModel):
    id: int
    name: str
    face_enrolled_at: datetime | None = None


class EnrolledUsersResponse(ApiModel):
    ok: bool = True
    enrolled_users: list[EnrolledUser]
    count: int


class SessionResponse(ApiModel):
    ok: bool = True
    user: UserOut


class OkResponse(ApiModel):
    ok: bool = True


class HealthResponse(ApiModel):
    """Health check response."""

    status: str = "ok"
    enrolled_count: int
    extractor: str | None
    concurrent_captures: int
    queue_depth: int


class ErrorResponse(ApiModel):
    """Standard error response."""

    ok: bool = False
    error: str
    kind: str
    reason: str | None = None
