"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse

from medirunner.api.middleware import clear_session, issue_session, session_identity_id, verify_api_key
from medirunner.api.schemas import (
    CreateUserRequest,
    CreateUserResponse,
    EnrolledUser,
    EnrolledUsersResponse,
    EnrollmentStatusResponse,
    EnrollRequest,
    EnrollResponse,
    ErrorResponse,
    HealthResponse,
    OkResponse,
    RecognizeRequest,
    RecognizeResponse,
    SessionResponse,
    UserOut,
    UsersResponse,
)

if TYPE_CHECKING:
    from medirunner.config import Settings
    from medirunner.face.authentication import AuthenticationResult, AuthenticationService
    from medirunner.face.enrollment import EnrollmentService
    from medirunner.face.store import Identity, SqlDescriptorStore
    from medirunner.ml.capture import CapturePool
    from medirunner.ml.extractor import DescriptorExtractor

router = APIRouter(prefix="/api/v1")

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}

_CAPTURE_RESPONSES: dict[int | str, dict[str, object]] = {
    **_ERROR_RESPONSES,
    status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
    status.HTTP_422_UNPROCESSABLE_CONTENT: {"model": ErrorResponse},
    status.HTTP_501_NOT_IMPLEMENTED: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_store(request: Request) -> SqlDescriptorStore:
    store: SqlDescriptorStore = request.app.state.store
    return store


def _get_enrollment(request: Request) -> EnrollmentService:
    enrollment: EnrollmentService = request.app.state.enrollment
    return enrollment


def _get_authentication(request: Request) -> AuthenticationService:
    authentication: AuthenticationService = request.app.state.authentication
    return authentication


def _get_capture_pool(request: Request) -> CapturePool:
    pool: CapturePool = request.app.state.capture_pool
    return pool


def _get_extractor(request: Request) -> DescriptorExtractor | None:
    extractor: DescriptorExtractor | None = request.app.state.extractor
    return extractor


def _user_out(identity: Identity) -> UserOut:
    return UserOut(
        id=identity.id,
        name=identity.name,
        role=identity.role,
        face_enrolled=identity.has_enrolled_face,
        face_enrolled_at=identity.enrolled_at,
    )


def _error(status_code: int, error: str, kind: str) -> JSONResponse:
    body = ErrorResponse(error=error, kind=kind)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))


def _recognition_response(result: AuthenticationResult, response: Response, settings: Settings) -> RecognizeResponse:
    if result.identity is None:
        return RecognizeResponse(
            matched=False,
            confidence=result.confidence,
            distance=result.distance,
            error="Face not recognized",
        )

    issue_session(response, settings, result.identity.id)
    return RecognizeResponse(
        matched=True,
        identity_id=result.identity.id,
        user=_user_out(result.identity),
        confidence=result.confidence,
        distance=result.distance,
    )


async def _read_frame(request: Request, file: UploadFile) -> bytes | JSONResponse:
    settings = _get_settings(request)
    frame = await file.read(settings.max_frame_size + 1)
    if len(frame) > settings.max_frame_size:
        return _error(status.HTTP_413_CONTENT_TOO_LARGE, "Frame exceeds maximum size", "frame_too_large")
    if not frame:
        return _error(status.HTTP_400_BAD_REQUEST, "Empty frame", "validation_error")
    return frame


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    store = _get_store(request)
    pool = _get_capture_pool(request)
    extractor = _get_extractor(request)
    return HealthResponse(
        status="ok",
        enrolled_count=await store.count_enrolled(),
        extractor=None if extractor is None else extractor.model_name,
        concurrent_captures=pool.active_count,
        queue_depth=pool.queue_depth,
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UsersResponse, summary="List users")
async def list_users(request: Request) -> UsersResponse:
    """Return every user ordered by name, with their enrollment state."""
    identities = await _get_store(request).list_identities()
    return UsersResponse(users=[_user_out(identity) for identity in identities])


@router.post(
    "/users",
    response_model=CreateUserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_api_key)],
    summary="Register a user",
)
async def create_user(request: Request, body: CreateUserRequest) -> CreateUserResponse:
    identity = await _get_store(request).create_identity(body.name, body.role)
    return CreateUserResponse(user=_user_out(identity))


# ---------------------------------------------------------------------------
# Face enrollment
# ---------------------------------------------------------------------------


@router.post(
    "/face/enroll",
    response_model=EnrollResponse,
    responses=_ERROR_RESPONSES,
    summary="Enroll a face descriptor",
)
async def enroll_face(request: Request, body: EnrollRequest) -> EnrollResponse:
    """Store a client-captured descriptor for a user, replacing any previous one."""
    receipt = await _get_enrollment(request).enroll(body.user_id, body.face_descriptor)
    return EnrollResponse(enrolled_at=receipt.enrolled_at, replaced=receipt.replaced)


@router.get(
    "/face/enroll",
    response_model=EnrollmentStatusResponse,
    responses=_ERROR_RESPONSES,
    summary="Get enrollment status",
)
async def enrollment_status(
    request: Request,
    user_id: Annotated[int, Query(alias="userId")],
) -> EnrollmentStatusResponse:
    enrollment_state = await _get_enrollment(request).status(user_id)
    return EnrollmentStatusResponse(enrolled=enrollment_state.enrolled, enrolled_at=enrollment_state.enrolled_at)


@router.post(
    "/face/enroll/capture",
    response_model=EnrollResponse,
    responses=_CAPTURE_RESPONSES,
    summary="Capture a frame and enroll the face in it",
)
async def enroll_from_frame(
    request: Request,
    user_id: Annotated[int, Query(alias="userId")],
    file: UploadFile,
) -> EnrollResponse | JSONResponse:
    """Extract the single face in an uploaded frame and enroll it."""
    extractor = _get_extractor(request)
    if extractor is None:
        return _error(status.HTTP_501_NOT_IMPLEMENTED, "Face capture not configured", "not_implemented")

    enrollment = _get_enrollment(request)
    # Fail before the capture when the user is unknown.
    await enrollment.status(user_id)

    frame = await _read_frame(request, file)
    if isinstance(frame, JSONResponse):
        return frame

    descriptor = await _get_capture_pool(request).capture_descriptor(extractor, frame)
    receipt = await enrollment.enroll(user_id, descriptor)
    return EnrollResponse(enrolled_at=receipt.enrolled_at, replaced=receipt.replaced)


# ---------------------------------------------------------------------------
# Face recognition
# ---------------------------------------------------------------------------


@router.post(
    "/face/recognize",
    response_model=RecognizeResponse,
    responses=_ERROR_RESPONSES,
    summary="Match a face descriptor",
)
async def recognize_face(request: Request, response: Response, body: RecognizeRequest) -> RecognizeResponse:
    """Match a client-captured descriptor; sets the session cookie on a match."""
    result = await _get_authentication(request).authenticate_descriptor(body.face_descriptor)
    return _recognition_response(result, response, _get_settings(request))


@router.get(
    "/face/recognize",
    response_model=EnrolledUsersResponse,
    summary="List enrolled users",
)
async def enrolled_users(request: Request) -> EnrolledUsersResponse:
    """Return users with an enrolled face. Descriptors are never returned."""
    identities = [identity for identity in await _get_store(request).list_identities() if identity.has_enrolled_face]
    return EnrolledUsersResponse(
        enrolled_users=[
            EnrolledUser(id=identity.id, name=identity.name, face_enrolled_at=identity.enrolled_at)
            for identity in identities
        ],
        count=len(identities),
    )


@router.post(
    "/face/authenticate",
    response_model=RecognizeResponse,
    responses=_CAPTURE_RESPONSES,
    summary="Capture a frame and authenticate the face in it",
)
async def authenticate_frame(
    request: Request,
    response: Response,
    file: UploadFile,
) -> RecognizeResponse | JSONResponse:
    """Extract the single face in an uploaded frame and match it."""
    extractor = _get_extractor(request)
    if extractor is None:
        return _error(status.HTTP_501_NOT_IMPLEMENTED, "Face capture not configured", "not_implemented")

    frame = await _read_frame(request, file)
    if isinstance(frame, JSONResponse):
        return frame

    capture = _get_capture_pool(request).capture_descriptor(extractor, frame)
    result = await _get_authentication(request).authenticate(capture)
    return _recognition_response(result, response, _get_settings(request))


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@router.get(
    "/auth/session",
    response_model=SessionResponse,
    responses={status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse}},
    summary="Current session user",
)
async def current_session(request: Request) -> SessionResponse | JSONResponse:
    identity_id = session_identity_id(request)
    identity = None if identity_id is None else await _get_store(request).get_identity(identity_id)
    if identity is None:
        return _error(status.HTTP_401_UNAUTHORIZED, "Not signed in", "unauthenticated")
    return SessionResponse(user=_user_out(identity))


@router.post("/auth/logout", response_model=OkResponse, summary="Clear the session")
async def logout(request: Request, response: Response) -> OkResponse:
    clear_session(response, _get_settings(request))
    return OkResponse()
