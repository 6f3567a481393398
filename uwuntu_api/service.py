"""HTTP API for key issuance, presence heartbeats and account administration."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from .accounts import AccountService
from .auth import AdminAuthService
from .config import Settings, load_settings
from .database import Database
from .errors import UwuntuError
from .keys import generate_api_key
from .management import CSV_FILENAME, AdminManagementService
from .models import AccountRecord, UserListing
from .sessions import AdminSession, InMemorySessionStore, SessionStore

logger = logging.getLogger("uwuntu.service")

SESSION_COOKIE_NAME = "uwuntu_session"
SESSION_ID_KEY = "sid"


class SaveUserRequest(BaseModel):
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    email: Optional[str] = None
    apiKey: Optional[str] = None


class CredentialsRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AccountView(BaseModel):
    id: int
    firstname: str
    lastname: str
    email: str
    user_created_at: datetime
    api_key: Optional[str] = None
    apikey_created_at: Optional[datetime] = None


class SaveUserResponse(BaseModel):
    success: bool
    user: AccountView


class UserListingView(BaseModel):
    id: int
    firstname: str
    lastname: str
    email: str
    is_online: bool
    last_seen: Optional[datetime] = None
    online_now: bool
    user_created_at: datetime
    api_key: Optional[str] = None
    apikey_created_at: Optional[datetime] = None


class UserListResponse(BaseModel):
    users: List[UserListingView]


class GeneratedKeyResponse(BaseModel):
    apiKey: str
    createdAt: datetime


class ValidationResponse(BaseModel):
    valid: bool
    key: str
    status: str
    createdAt: datetime
    message: str


class RegisterResponse(BaseModel):
    success: bool
    adminId: int


class SuccessResponse(BaseModel):
    success: bool = True


def _account_to_view(record: AccountRecord) -> AccountView:
    return AccountView(
        id=record.id,
        firstname=record.firstname,
        lastname=record.lastname,
        email=record.email,
        user_created_at=record.user_created_at,
        api_key=record.api_key,
        apikey_created_at=record.apikey_created_at,
    )


def _listing_to_view(listing: UserListing) -> UserListingView:
    record = listing.record
    return UserListingView(
        id=record.id,
        firstname=record.firstname,
        lastname=record.lastname,
        email=record.email,
        is_online=record.is_online,
        last_seen=record.last_seen,
        online_now=listing.online_now,
        user_created_at=record.user_created_at,
        api_key=record.api_key,
        apikey_created_at=record.apikey_created_at,
    )


def register_api_routes(app: FastAPI, accounts: AccountService) -> None:
    """Expose the public key and presence endpoints."""

    router = APIRouter(prefix="/api")

    @router.get("/test")
    async def api_test() -> Dict[str, str]:
        logger.info("/api/test requested")
        return {
            "status": "ok",
            "message": "UwUntu API is running",
            "time": datetime.now(timezone.utc).isoformat(),
        }

    @router.get("/generate-key", response_model=GeneratedKeyResponse)
    async def generate_key() -> GeneratedKeyResponse:
        api_key = generate_api_key()
        logger.info("Generated key (not saved): %s", api_key)
        return GeneratedKeyResponse(apiKey=api_key, createdAt=datetime.now(timezone.utc))

    @router.post("/save-user", response_model=SaveUserResponse)
    def save_user(request: SaveUserRequest) -> SaveUserResponse:
        record = accounts.save_user(
            request.firstname,
            request.lastname,
            request.email,
            request.apiKey,
        )
        return SaveUserResponse(success=True, user=_account_to_view(record))

    @router.get("/validate", response_model=ValidationResponse)
    def validate(key: Optional[str] = Query(default=None)):
        try:
            result = accounts.validate_key(key)
        except UwuntuError as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"valid": False, "reason": exc.code, "message": exc.message},
            )
        return ValidationResponse(
            valid=True,
            key=result.key,
            status=result.status,
            createdAt=result.created_at,
            message="API key is valid and last_seen was updated.",
        )

    @router.post("/user/{user_id}/online", response_model=SuccessResponse)
    def heartbeat_online(user_id: int) -> SuccessResponse:
        accounts.set_online(user_id)
        return SuccessResponse()

    @router.post("/user/{user_id}/offline", response_model=SuccessResponse)
    def heartbeat_offline(user_id: int) -> SuccessResponse:
        accounts.set_offline(user_id)
        return SuccessResponse()

    app.include_router(router)


def register_admin_routes(
    app: FastAPI,
    auth: AdminAuthService,
    management: AdminManagementService,
) -> None:
    """Expose administrator authentication and the session-guarded admin API."""

    def require_admin(request: Request) -> AdminSession:
        return auth.guard(request.session.get(SESSION_ID_KEY))

    public = APIRouter(prefix="/admin")

    @public.post("/register", response_model=RegisterResponse)
    def register(request: CredentialsRequest) -> RegisterResponse:
        admin_id = auth.register(request.email, request.password)
        return RegisterResponse(success=True, adminId=admin_id)

    @public.post("/login", response_model=SuccessResponse)
    def login(request: Request, credentials: CredentialsRequest) -> SuccessResponse:
        session = auth.login(
            credentials.email,
            credentials.password,
            previous_session_id=request.session.get(SESSION_ID_KEY),
        )
        request.session.clear()
        request.session[SESSION_ID_KEY] = session.session_id
        return SuccessResponse()

    @public.post("/logout", response_model=SuccessResponse)
    def logout(request: Request) -> SuccessResponse:
        session_id = request.session.get(SESSION_ID_KEY)
        auth.logout(session_id)
        request.session.clear()
        if session_id:
            logger.info("Admin session closed")
        return SuccessResponse()

    protected = APIRouter(prefix="/admin/api", dependencies=[Depends(require_admin)])

    @protected.get("/users", response_model=UserListResponse)
    def list_users() -> UserListResponse:
        return UserListResponse(users=[_listing_to_view(item) for item in management.list_users()])

    @protected.post("/user/{user_id}/revoke", response_model=SuccessResponse)
    def revoke_key(user_id: int, admin: AdminSession = Depends(require_admin)) -> SuccessResponse:
        logger.info("Admin %s revoking key of user %s", admin.admin_id, user_id)
        management.revoke_key(user_id)
        return SuccessResponse()

    @protected.get("/export")
    def export_csv() -> StreamingResponse:
        return StreamingResponse(
            management.export_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
        )

    @protected.post("/user/{user_id}/delete", response_model=SuccessResponse)
    def delete_user(user_id: int, admin: AdminSession = Depends(require_admin)) -> SuccessResponse:
        logger.info("Admin %s deleting user %s", admin.admin_id, user_id)
        management.delete_user(user_id)
        return SuccessResponse()

    app.include_router(public)
    app.include_router(protected)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(UwuntuError)
    async def handle_uwuntu_error(_: Request, exc: UwuntuError):
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("Request failed: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "validation_error", "message": "Invalid request."},
        )


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    session_secret: str | None = None,
    session_store: SessionStore | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the key issuance service."""

    settings = settings or load_settings()
    if session_secret is None:
        session_secret = settings.session_secret
    if not session_secret:
        raise RuntimeError("UWUNTU_SESSION_SECRET must be configured to serve the admin API")

    db = database or Database(settings.database_path)
    db.initialize()

    sessions = session_store or InMemorySessionStore(ttl=settings.session_ttl)
    clock_kwargs = {"clock": clock} if clock is not None else {}
    accounts = AccountService(db, **clock_kwargs)
    auth = AdminAuthService(db, sessions)
    management = AdminManagementService(db, **clock_kwargs)

    app = FastAPI(
        title="UwUntu API",
        version="0.1.0",
        description="Key issuance and account presence service.",
    )

    if not settings.secure_cookies:
        logger.warning(
            "Session cookies are not marked as secure. Only disable secure cookies for"
            " local development."
        )
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        https_only=settings.secure_cookies,
        same_site="lax",
        max_age=int(settings.session_ttl.total_seconds()),
    )

    app.state.database = db
    app.state.settings = settings
    app.state.session_store = sessions
    app.state.accounts = accounts
    app.state.auth = auth
    app.state.management = management

    _register_error_handlers(app)
    register_api_routes(app, accounts)
    register_admin_routes(app, auth, management)

    return app


__all__ = ["SESSION_COOKIE_NAME", "create_app"]
