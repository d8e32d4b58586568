"""FastAPI application exposing the class chat JSON API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, field_validator

from .config import Settings, load_settings
from .database import Database
from .errors import DomainError, ValidationError
from .models import is_user_id
from .service import ADMIN_PASSWORD_HEADER, ClassChat
from .sessions import SessionManager


def _stringify(value: object) -> object:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    classCode: Optional[str] = None

    @field_validator("classCode", mode="before")
    @classmethod
    def _normalise_class_code(cls, value: object) -> object:
        return _stringify(value)


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = None


class JoinClassRequest(BaseModel):
    classId: Optional[str] = None
    code: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _normalise_code(cls, value: object) -> object:
        return _stringify(value)


class SelectClassRequest(BaseModel):
    classId: Optional[str] = None


class PostMessageRequest(BaseModel):
    text: Optional[str] = None


class AdminLoginRequest(BaseModel):
    password: Optional[str] = None


class ChangeAdminPasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None

    @field_validator("currentPassword", "newPassword", mode="before")
    @classmethod
    def _normalise_passwords(cls, value: object) -> object:
        return _stringify(value)


class UpdateRoleRequest(BaseModel):
    role: Optional[str] = None


class CreateClassRequest(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _normalise_code(cls, value: object) -> object:
        return _stringify(value)


class UpdateClassRequest(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    enabled: Optional[bool] = None

    @field_validator("code", mode="before")
    @classmethod
    def _normalise_code(cls, value: object) -> object:
        return _stringify(value)


def _require_user_id(user_id: str) -> str:
    if not is_user_id(user_id):
        raise ValidationError("User id must be 7 digits")
    return user_id


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Bad request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value"))
    return f"{location}: {message}" if location else message


def build_chat(settings: Settings, *, database: Optional[Database] = None) -> ClassChat:
    """Wire the store, token manager and facade together and bootstrap the store."""

    db = database or Database.from_path(settings.store_path, bundled_path=settings.bundled_store_path)
    sessions = SessionManager(settings.token_secret, ttl=settings.token_ttl)
    chat = ClassChat(db, sessions, settings)
    chat.bootstrap()
    return chat


def register_routes(app: FastAPI, chat: ClassChat) -> None:
    """Expose the user and admin endpoints on ``app``."""

    bearer_security = HTTPBearer(auto_error=False)

    def bearer_token(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer_security),
    ) -> Optional[str]:
        if credentials is None or credentials.scheme.lower() != "bearer":
            return None
        return credentials.credentials

    def admin_password(
        password: Optional[str] = Header(default=None, alias=ADMIN_PASSWORD_HEADER),
    ) -> Optional[str]:
        return password

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/auth/register", status_code=status.HTTP_201_CREATED)
    async def register(request: RegisterRequest) -> Dict[str, Any]:
        user = await chat.register(
            name=request.name,
            username=request.username,
            password=request.password,
            class_code=request.classCode,
        )
        return {"message": "Registered successfully", "userId": user["id"]}

    @app.post("/api/auth/login")
    async def login(request: LoginRequest) -> Dict[str, str]:
        token = await chat.login(request.username, request.password)
        return {"token": token}

    @app.get("/api/me")
    async def me(token: Optional[str] = Depends(bearer_token)) -> Dict[str, Any]:
        return await chat.me(token)

    @app.patch("/api/me")
    async def update_me(
        request: UpdateProfileRequest,
        token: Optional[str] = Depends(bearer_token),
    ) -> Dict[str, Any]:
        return await chat.update_me(token, name=request.name)

    @app.get("/api/classes")
    async def list_classes(token: Optional[str] = Depends(bearer_token)) -> List[Dict[str, Any]]:
        return await chat.list_classes(token)

    @app.post("/api/join-class")
    async def join_class(
        request: JoinClassRequest,
        token: Optional[str] = Depends(bearer_token),
    ) -> Dict[str, Any]:
        active = await chat.join_class(token, request.classId, request.code)
        return {"message": "Joined class", "activeClass": active}

    @app.post("/api/select-class")
    async def select_class(
        request: SelectClassRequest,
        token: Optional[str] = Depends(bearer_token),
    ) -> Dict[str, Any]:
        active = await chat.select_class(token, request.classId)
        return {"message": "Class selected", "activeClass": active}

    @app.get("/api/classmates")
    async def classmates(token: Optional[str] = Depends(bearer_token)) -> List[Dict[str, Any]]:
        return await chat.classmates(token)

    @app.get("/api/users/{user_id}")
    async def user_profile(user_id: str, token: Optional[str] = Depends(bearer_token)) -> Dict[str, Any]:
        return await chat.user_profile(token, _require_user_id(user_id))

    @app.post("/api/users/{user_id}/like")
    async def like_user(user_id: str, token: Optional[str] = Depends(bearer_token)) -> Dict[str, Any]:
        return await chat.toggle_user_like(token, _require_user_id(user_id))

    @app.get("/api/messages")
    async def list_messages(token: Optional[str] = Depends(bearer_token)) -> List[Dict[str, Any]]:
        return await chat.list_messages(token)

    @app.post("/api/messages", status_code=status.HTTP_201_CREATED)
    async def post_message(
        request: PostMessageRequest,
        token: Optional[str] = Depends(bearer_token),
    ) -> Dict[str, Any]:
        return await chat.post_message(token, request.text)

    @app.delete("/api/messages/{message_id}")
    async def delete_message(message_id: str, token: Optional[str] = Depends(bearer_token)) -> Dict[str, str]:
        await chat.delete_message(token, message_id)
        return {"message": "Message deleted"}

    @app.post("/api/messages/{message_id}/like")
    async def like_message(message_id: str, token: Optional[str] = Depends(bearer_token)) -> Dict[str, Any]:
        return await chat.toggle_message_like(token, message_id)

    @app.post("/api/admin/login")
    async def admin_login(request: AdminLoginRequest) -> Dict[str, bool]:
        await chat.admin_login(request.password)
        return {"ok": True}

    @app.post("/api/admin/change-password")
    async def change_admin_password(
        request: ChangeAdminPasswordRequest,
        password: Optional[str] = Depends(admin_password),
    ) -> Dict[str, str]:
        await chat.change_admin_password(
            password,
            current_password=request.currentPassword,
            new_password=request.newPassword,
        )
        return {"message": "Admin password updated"}

    @app.get("/api/admin/users")
    async def admin_users(password: Optional[str] = Depends(admin_password)) -> List[Dict[str, Any]]:
        return await chat.admin_list_users(password)

    @app.patch("/api/admin/users/{user_id}/status")
    async def admin_set_role(
        user_id: str,
        request: UpdateRoleRequest,
        password: Optional[str] = Depends(admin_password),
    ) -> Dict[str, str]:
        await chat.admin_set_role(password, _require_user_id(user_id), request.role)
        return {"message": "Status updated"}

    @app.delete("/api/admin/users/{user_id}")
    async def admin_delete_user(user_id: str, password: Optional[str] = Depends(admin_password)) -> Dict[str, str]:
        await chat.admin_delete_user(password, _require_user_id(user_id))
        return {"message": "User deleted"}

    @app.get("/api/admin/classes")
    async def admin_classes(password: Optional[str] = Depends(admin_password)) -> List[Dict[str, Any]]:
        return await chat.admin_list_classes(password)

    @app.post("/api/admin/classes", status_code=status.HTTP_201_CREATED)
    async def admin_create_class(
        request: CreateClassRequest,
        password: Optional[str] = Depends(admin_password),
    ) -> Dict[str, Any]:
        return await chat.admin_create_class(password, name=request.name, code=request.code)

    @app.patch("/api/admin/classes/{class_id}")
    async def admin_update_class(
        class_id: str,
        request: UpdateClassRequest,
        password: Optional[str] = Depends(admin_password),
    ) -> Dict[str, Any]:
        return await chat.admin_update_class(
            password,
            class_id,
            name=request.name,
            code=request.code,
            enabled=request.enabled,
        )

    @app.delete("/api/admin/classes/{class_id}")
    async def admin_delete_class(class_id: str, password: Optional[str] = Depends(admin_password)) -> Dict[str, str]:
        await chat.admin_delete_class(password, class_id)
        return {"message": "Class deleted"}


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    chat: Optional[ClassChat] = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the chat service."""

    if chat is None:
        chat = build_chat(settings or load_settings(), database=database)

    app = FastAPI(
        title="ClassChat API",
        version="0.1.0",
        description="Class-scoped chat with signed session tokens.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(chat.settings.cors_origins),
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", ADMIN_PASSWORD_HEADER],
    )
    app.state.chat = chat

    @app.exception_handler(DomainError)
    async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": _describe_validation_error(exc)},
        )

    register_routes(app, chat)
    return app


__all__ = ["build_chat", "create_app", "register_routes"]
