"""FastAPI application that exposes the user CRUD endpoints."""
from __future__ import annotations

import logging
from datetime import datetime
from functools import partial
from typing import Any, Dict, List, Optional

import anyio
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import InvalidInput, NotFound, StorageError
from .models import User
from .users import UserService

logger = logging.getLogger("accounts.api")


class UserCreateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    age: Any = None


class UserUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    age: Any = None


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    age: int
    created_at: datetime


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        age=user.age,
        created_at=user.created_at,
    )


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _describe_validation_error(exc: RequestValidationError) -> str:
    messages: List[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


def register_error_handlers(app: FastAPI) -> None:
    """Translate service exceptions into HTTP responses."""

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, _describe_validation_error(exc))

    @app.exception_handler(InvalidInput)
    async def _invalid_input(_request: Request, exc: InvalidInput) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(NotFound)
    async def _not_found(_request: Request, exc: NotFound) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(StorageError)
    async def _storage_error(_request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


def create_app(*, service: UserService) -> FastAPI:
    """Create the user API around an already wired :class:`UserService`."""

    app = FastAPI(title="Accounts User API")
    app.state.user_service = service
    register_error_handlers(app)

    async def _call(func, *args: Any, **kwargs: Any):
        # The store is synchronous; keep it off the event loop.
        return await anyio.to_thread.run_sync(partial(func, *args, **kwargs))

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    async def create_user(payload: UserCreateRequest) -> UserResponse:
        user = await _call(service.create_user, payload.name, payload.email, payload.age)
        return user_to_response(user)

    @app.get("/users", response_model=List[UserResponse])
    async def list_users() -> List[UserResponse]:
        users = await _call(service.get_all_users)
        return [user_to_response(user) for user in users]

    @app.get("/users/{user_id}", response_model=UserResponse)
    async def read_user(user_id: int) -> UserResponse:
        user = await _call(service.get_user_by_id, user_id)
        return user_to_response(user)

    @app.put("/users/{user_id}", response_model=UserResponse)
    async def update_user(user_id: int, payload: UserUpdateRequest) -> UserResponse:
        user = await _call(
            service.update_user,
            user_id,
            name=payload.name,
            email=payload.email,
            age=payload.age,
        )
        return user_to_response(user)

    @app.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_user(user_id: int) -> Response:
        await _call(service.delete_user, user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app", "register_error_handlers", "user_to_response", "UserResponse"]
