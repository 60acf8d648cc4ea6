"""Account endpoints and per-user action items.

Register, login and refresh-token are public; everything else requires a
valid access token.
"""

from __future__ import annotations

import uuid

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.meeting_tracker.api.deps import get_current_user
from src.meeting_tracker.api.v1.meetings import (
    ActionItemResponse,
    _action_item_to_response,
    _get_engine,
)
from src.meeting_tracker.meetings.schemas import AssignedActionItem
from src.meeting_tracker.users.accounts import AccountService
from src.meeting_tracker.users.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    TokenRefreshRequest,
    TokenResponse,
    User,
    UserCreate,
    UserResponse,
    UserRole,
    UserUpdate,
)

router = APIRouter(prefix="/users", tags=["users"])


class MessageResponse(BaseModel):
    message: str


class AssignedActionItemResponse(ActionItemResponse):
    """Action item with the meeting it came from."""

    meeting: dict


def _get_account_service(request: Request) -> AccountService:
    """Retrieve AccountService from app.state, 503 if not available."""
    service = getattr(request.app.state, "account_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account service not initialized",
        )
    return service


def _assigned_to_response(a: AssignedActionItem) -> AssignedActionItemResponse:
    return AssignedActionItemResponse(
        **_action_item_to_response(a.item).model_dump(),
        meeting=a.meeting.model_dump(mode="json"),
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    username: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    full_name: str = Form(...),
    department: str = Form(...),
    employee_id: str = Form(...),
    role: UserRole = Form(UserRole.STAFF),
    job_title: str | None = Form(None),
    manager_id: uuid.UUID | None = Form(None),
    timezone: str = Form("UTC"),
    avatar: UploadFile | None = File(None),
) -> UserResponse:
    """Create an account from multipart form fields with an optional avatar."""
    try:
        data = UserCreate(
            username=username,
            email=email,
            password=password,
            full_name=full_name,
            role=role,
            department=department,
            job_title=job_title,
            employee_id=employee_id,
            manager_id=manager_id,
            timezone=timezone,
        )
    except PydanticValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        )

    service = _get_account_service(request)
    user = await service.register(data, avatar)
    return UserResponse.from_user(user)


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, request: Request) -> LoginResponse:
    """Authenticate with email or username and return JWT tokens."""
    service = _get_account_service(request)
    user, tokens = await service.login(body)
    return LoginResponse(**tokens.model_dump(), user=UserResponse.from_user(user))


@router.post("/refresh-token", response_model=TokenResponse)
async def refresh_token(body: TokenRefreshRequest, request: Request) -> TokenResponse:
    """Issue a new token pair from a valid refresh token."""
    service = _get_account_service(request)
    return await service.refresh(body.refresh_token)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.from_user(current_user)


@router.patch("/me", response_model=UserResponse)
async def update_me(
    body: UserUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    service = _get_account_service(request)
    user = await service.update_details(current_user, body)
    return UserResponse.from_user(user)


@router.patch("/me/avatar", response_model=UserResponse)
async def update_avatar(
    request: Request,
    avatar: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    service = _get_account_service(request)
    user = await service.update_avatar(current_user, avatar)
    return UserResponse.from_user(user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    service = _get_account_service(request)
    await service.change_password(current_user, body.old_password, body.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post("/me/deactivate", response_model=MessageResponse)
async def deactivate(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    service = _get_account_service(request)
    await service.deactivate(current_user)
    return MessageResponse(message="Account deactivated successfully")


@router.get("/{user_id}/action-items", response_model=list[AssignedActionItemResponse])
async def user_action_items(
    user_id: uuid.UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> list[AssignedActionItemResponse]:
    """Open action items assigned to a user across all meetings."""
    engine = _get_engine(request)
    assigned = await engine.action_items_for_user(user_id, current_user)
    return [_assigned_to_response(a) for a in assigned]
