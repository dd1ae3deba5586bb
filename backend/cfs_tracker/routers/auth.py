from __future__ import annotations

import secrets
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..database import settings
from ..dependencies import Database
from ..models.user import AuthResponse, UserCreate, UserLogin, UserPublic, UserRole
from ..schemas.documents import serialize_document, to_object_id
from ..utils.logging import log_db_error
from ..utils.security import create_access_token, decode_token, hash_password, verify_password

router = APIRouter(prefix="/api/auth", tags=["auth"])
bearer_scheme = HTTPBearer(auto_error=False)


async def get_user_collection(database: Database) -> AsyncIOMotorCollection:
    return database.get_collection("users")


Users = Annotated[AsyncIOMotorCollection, Depends(get_user_collection)]


@router.post("/register", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def register_user(payload: UserCreate, users: Users) -> UserPublic:
    if payload.role == "admin":
        key = settings.admin_registration_key
        if not key or not payload.admin_secret or not secrets.compare_digest(payload.admin_secret, key):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or missing Admin Secret Key.")
    try:
        existing = await users.find_one({"email": payload.email})
        if existing:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
        doc = {
            "email": payload.email,
            "name": payload.name,
            "password": hash_password(payload.password),
            "role": payload.role,
            "organization": payload.organization,
            "phone": payload.phone,
            "location": payload.location,
            "created_at": datetime.utcnow(),
        }
        result = await users.insert_one(doc)
        stored = await users.find_one({"_id": result.inserted_id})
    except DuplicateKeyError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered") from exc
    except PyMongoError as exc:  # pragma: no cover - requires external service
        log_db_error("register_user", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Registration failed. Try again when database is available.",
        ) from exc
    return UserPublic(**serialize_document(stored))


@router.post("/login", response_model=AuthResponse)
async def login_user(payload: UserLogin, users: Users) -> AuthResponse:
    try:
        user = await users.find_one({"email": payload.email})
    except PyMongoError as exc:  # pragma: no cover
        log_db_error("login_user", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Login unavailable. Try again shortly.",
        ) from exc
    if not user or not verify_password(payload.password, user.get("password", "")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password.")
    user = serialize_document(user)
    token = create_access_token(user["_id"], user["role"])
    return AuthResponse(access_token=token, user=UserPublic(**user), message="Login successful")


async def get_optional_user(
    users: Users,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Optional[UserPublic]:
    if credentials is None:
        return None
    try:
        payload = decode_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    object_id = to_object_id(payload.get("sub"))
    if object_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")
    user = await users.find_one({"_id": object_id})
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return UserPublic(**serialize_document(user))


async def get_current_user(user: Optional[UserPublic] = Depends(get_optional_user)) -> UserPublic:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    return user


def require_roles(*roles: UserRole):
    def dependency(user: UserPublic = Depends(get_current_user)) -> UserPublic:
        if roles and user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return dependency


CurrentUser = Annotated[UserPublic, Depends(get_current_user)]
OptionalUser = Annotated[Optional[UserPublic], Depends(get_optional_user)]
AdminUser = Annotated[UserPublic, Depends(require_roles("admin"))]
SchoolUser = Annotated[UserPublic, Depends(require_roles("school"))]


def ensure_owner_or_admin(user: UserPublic, owner_id: Optional[str]) -> None:
    if user.role != "admin" and owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


@router.get("/me", response_model=UserPublic)
async def read_me(user: CurrentUser) -> UserPublic:
    return user
