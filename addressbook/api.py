"""FastAPI application exposing the authentication, user and address endpoints."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from .addresses import DefaultAddressManager
from .config import Settings, load_settings
from .credentials import MAX_PASSWORD_BYTES, CredentialManager, password_fits
from .database import Database
from .errors import ServiceError, UnauthorizedError
from .models import Address, AuthResult, PublicUser, TokenClaims
from .security import BearerAuth
from .tokens import TokenIssuer

logger = logging.getLogger("addressbook.api")


def _check_password_bytes(value: str) -> str:
    if not password_fits(value):
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=72)
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=72)


class UpdateUserRequest(BaseModel):
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _check_password_bytes(value)


class CreateAddressRequest(BaseModel):
    user_id: int
    line1: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=1, max_length=100)
    is_default: bool = False


class UpdateAddressRequest(BaseModel):
    line1: Optional[str] = Field(default=None, min_length=1, max_length=255)
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    country: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_default: Optional[bool] = None


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    created_at: datetime
    updated_at: datetime


class AuthResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"


class AddressResponse(BaseModel):
    id: int
    user_id: int
    line1: str
    city: str
    country: str
    is_default: bool
    created_at: datetime
    updated_at: datetime
    user: Optional[UserResponse] = None


class MessageResponse(BaseModel):
    message: str


def user_to_response(user: PublicUser) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def auth_to_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(user=user_to_response(result.user), access_token=result.access_token)


def address_to_response(address: Address) -> AddressResponse:
    return AddressResponse(
        id=address.id,
        user_id=address.user_id,
        line1=address.line1,
        city=address.city,
        country=address.country,
        is_default=address.is_default,
        created_at=address.created_at,
        updated_at=address.updated_at,
        user=user_to_response(address.owner) if address.owner is not None else None,
    )


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database.from_settings(settings)
        database.initialize()
    elif initialize_database:
        database.initialize()

    issuer = TokenIssuer(settings)
    credentials = CredentialManager(settings, database, issuer)
    addresses = DefaultAddressManager(database)
    auth = BearerAuth(issuer)

    app = FastAPI(
        title="Address Book",
        description="User accounts and postal addresses with a single default per user",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.database = database
    app.state.credentials = credentials
    app.state.addresses = addresses

    @app.exception_handler(ServiceError)
    async def handle_service_error(_request: Request, exc: ServiceError) -> JSONResponse:
        headers: Dict[str, str] | None = None
        if isinstance(exc, UnauthorizedError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)

    @app.exception_handler(sqlite3.DatabaseError)
    async def handle_database_error(request: Request, exc: sqlite3.DatabaseError) -> JSONResponse:
        logger.error("Storage failure during %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    def get_credentials() -> CredentialManager:
        return credentials

    def get_addresses() -> DefaultAddressManager:
        return addresses

    async def get_current_claims(request: Request) -> TokenClaims:
        return await auth(request)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @app.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
    def register(
        payload: RegisterRequest,
        manager: CredentialManager = Depends(get_credentials),
    ) -> AuthResponse:
        result = manager.register(payload.email, payload.password, payload.name.strip())
        return auth_to_response(result)

    @app.post("/auth/login", response_model=AuthResponse)
    def login(
        payload: LoginRequest,
        manager: CredentialManager = Depends(get_credentials),
    ) -> AuthResponse:
        return auth_to_response(manager.login(payload.email, payload.password))

    @app.get("/auth/profile", response_model=UserResponse)
    def read_profile(
        claims: TokenClaims = Depends(get_current_claims),
        manager: CredentialManager = Depends(get_credentials),
    ) -> UserResponse:
        return user_to_response(manager.get_profile(claims.user_id))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def create_user(
        payload: RegisterRequest,
        manager: CredentialManager = Depends(get_credentials),
    ) -> UserResponse:
        user = manager.create_user(payload.email, payload.password, payload.name.strip())
        return user_to_response(user)

    @app.get("/users", response_model=List[UserResponse])
    def list_users(manager: CredentialManager = Depends(get_credentials)) -> List[UserResponse]:
        return [user_to_response(user) for user in manager.list_users()]

    @app.get("/users/{user_id}", response_model=UserResponse)
    def read_user(user_id: int, manager: CredentialManager = Depends(get_credentials)) -> UserResponse:
        return user_to_response(manager.get_user(user_id))

    @app.patch("/users/{user_id}", response_model=UserResponse)
    def update_user(
        user_id: int,
        payload: UpdateUserRequest,
        manager: CredentialManager = Depends(get_credentials),
    ) -> UserResponse:
        updates = payload.model_dump(exclude_unset=True)
        name = updates.get("name")
        user = manager.update_user(
            user_id,
            email=updates.get("email"),
            name=name.strip() if isinstance(name, str) else None,
            password=updates.get("password"),
        )
        return user_to_response(user)

    @app.delete("/users/{user_id}", response_model=MessageResponse)
    def delete_user(user_id: int, manager: CredentialManager = Depends(get_credentials)) -> MessageResponse:
        manager.delete_user(user_id)
        return MessageResponse(message="User deleted successfully")

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------
    @app.post("/addresses", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
    def create_address(
        payload: CreateAddressRequest,
        manager: DefaultAddressManager = Depends(get_addresses),
    ) -> AddressResponse:
        address = manager.create_address(
            payload.user_id,
            line1=payload.line1,
            city=payload.city,
            country=payload.country,
            is_default=payload.is_default,
        )
        return address_to_response(address)

    @app.get("/addresses", response_model=List[AddressResponse])
    def list_addresses(manager: DefaultAddressManager = Depends(get_addresses)) -> List[AddressResponse]:
        return [address_to_response(address) for address in manager.list_addresses()]

    @app.get("/addresses/user/{user_id}", response_model=List[AddressResponse])
    def list_user_addresses(
        user_id: int,
        manager: DefaultAddressManager = Depends(get_addresses),
    ) -> List[AddressResponse]:
        return [address_to_response(address) for address in manager.list_for_user(user_id)]

    @app.get("/addresses/user/{user_id}/default", response_model=Optional[AddressResponse])
    def read_default_address(
        user_id: int,
        manager: DefaultAddressManager = Depends(get_addresses),
    ) -> Optional[AddressResponse]:
        address = manager.get_default_for_user(user_id)
        if address is None:
            return None
        return address_to_response(address)

    @app.get("/addresses/{address_id}", response_model=AddressResponse)
    def read_address(address_id: int, manager: DefaultAddressManager = Depends(get_addresses)) -> AddressResponse:
        return address_to_response(manager.get_address(address_id))

    @app.patch("/addresses/{address_id}", response_model=AddressResponse)
    def update_address(
        address_id: int,
        payload: UpdateAddressRequest,
        manager: DefaultAddressManager = Depends(get_addresses),
    ) -> AddressResponse:
        updates = payload.model_dump(exclude_unset=True)
        address = manager.update_address(
            address_id,
            line1=updates.get("line1"),
            city=updates.get("city"),
            country=updates.get("country"),
            is_default=updates.get("is_default"),
        )
        return address_to_response(address)

    @app.patch("/addresses/{address_id}/set-default", response_model=AddressResponse)
    def set_default_address(
        address_id: int,
        manager: DefaultAddressManager = Depends(get_addresses),
    ) -> AddressResponse:
        return address_to_response(manager.set_as_default(address_id))

    @app.delete("/addresses/{address_id}", response_model=MessageResponse)
    def delete_address(
        address_id: int,
        manager: DefaultAddressManager = Depends(get_addresses),
    ) -> MessageResponse:
        manager.remove_address(address_id)
        return MessageResponse(message="Address deleted successfully")

    return app


__all__ = ["create_app"]
