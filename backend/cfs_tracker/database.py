from __future__ import annotations

from pathlib import Path
from typing import List

import motor.motor_asyncio
from loguru import logger
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo import ASCENDING
from pymongo.errors import ConfigurationError
from pymongo.uri_parser import parse_uri


BASE_DIR = Path(__file__).resolve().parents[1]
ENV_FILES = [BASE_DIR / ".env.local", BASE_DIR / ".env"]


class Settings(BaseSettings):
    mongodb_url: str = "mongodb://localhost:27017/cfs_tracker"
    jwt_secret: str = "supersecret"
    jwt_algorithm: str = "HS256"
    jwt_expires_min: int = 60
    bcrypt_rounds: int = 12
    mongo_server_timeout_ms: int = 2000
    mongo_connect_timeout_ms: int = 2000
    mongo_socket_timeout_ms: int = 2000
    admin_registration_key: str | None = None
    seed_admin_email: str = "admin@cfskenya.org"
    seed_admin_name: str = "CFS Admin"
    seed_admin_password: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_timeout_s: int = 25
    mail_from: str | None = None
    contact_email_to: str | None = None
    organization_name: str = "Computer for Schools Kenya"
    cors_origins: List[str] = ["http://127.0.0.1:5500", "http://localhost:5500"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=[str(path) for path in ENV_FILES],
        case_sensitive=False,
        env_prefix="",
    )


def get_settings() -> Settings:
    return Settings()


settings = get_settings()
FALLBACK_MONGO_URL = "mongodb://localhost:27017/cfs_tracker"


def _create_client(uri: str) -> motor.motor_asyncio.AsyncIOMotorClient:
    connect_kwargs = {
        "serverSelectionTimeoutMS": settings.mongo_server_timeout_ms,
        "connectTimeoutMS": settings.mongo_connect_timeout_ms,
        "socketTimeoutMS": settings.mongo_socket_timeout_ms,
    }
    try:
        return motor.motor_asyncio.AsyncIOMotorClient(uri, **connect_kwargs)
    except ConfigurationError as exc:
        if uri == FALLBACK_MONGO_URL:
            raise
        logger.warning(
            "MongoDB DNS resolution failed for {} ({}). Falling back to local Mongo at {}.",
            uri,
            exc,
            FALLBACK_MONGO_URL,
        )
        return motor.motor_asyncio.AsyncIOMotorClient(FALLBACK_MONGO_URL, **connect_kwargs)


client = _create_client(settings.mongodb_url)


def _resolve_database_name(uri: str | None) -> str:
    if uri:
        try:
            parsed = parse_uri(uri)
            if parsed.get("database"):
                return parsed["database"]
        except Exception as exc:  # pragma: no cover - malformed uri
            logger.warning("Unable to parse Mongo URI {} ({}). Using fallback database name.", uri, exc)
    return "cfs_tracker"


database_name = _resolve_database_name(settings.mongodb_url)
db = client.get_database(database_name)


async def get_database() -> motor.motor_asyncio.AsyncIOMotorDatabase:
    return db


async def ensure_indexes(database: motor.motor_asyncio.AsyncIOMotorDatabase) -> None:
    """Create the indexes the workflow relies on.

    The unique ``(donation_id, unit_index)`` index is what makes inventory
    generation safe against two status updates racing on the same donation.
    """
    inventory = database.get_collection("computer_inventory")
    await inventory.create_index(
        [("donation_id", ASCENDING), ("unit_index", ASCENDING)],
        unique=True,
        name="donation_unit_unique",
    )
    await inventory.create_index("assigned_school_request")
    await inventory.create_index("status")
    await database.get_collection("donations").create_index("status")
    await database.get_collection("school_requests").create_index("status")
    await database.get_collection("users").create_index("email", unique=True)
    await database.get_collection("status_history").create_index(
        [("entity", ASCENDING), ("entity_id", ASCENDING)]
    )


class MongoBaseModel(BaseModel):
    class Config:
        populate_by_name = True
        arbitrary_types_allowed = True
