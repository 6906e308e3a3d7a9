"""
MongoDB access for the FYP portal.

A single MongoClient is acquired when the app starts (``connect``) and released
on shutdown (``close``). Routes receive the database through the ``get_db``
dependency so tests can swap in another one.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import settings
from errors import PortalError

logger = logging.getLogger("fyp_portal.database")

COLLECTIONS = [
    "users",
    "projects",
    "applications",
    "notifications",
    "submissions",
    "logbooks",
    "completed_projects",
]

_client: Optional[MongoClient] = None
db: Optional[Database] = None


class DatabaseUnavailableError(PortalError):
    status_code = 503

    def __init__(self):
        super().__init__("Database not configured. Please set DATABASE_URL and DATABASE_NAME.")


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Database:
    global _client, db
    if db is not None:
        return db
    _client = MongoClient(url or settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = _client[name or settings.DATABASE_NAME]
    logger.info(f"MongoDB client created for database '{db.name}'")
    return db


def close() -> None:
    global _client, db
    if _client is not None:
        _client.close()
        logger.info("MongoDB client closed")
    _client = None
    db = None


def ping() -> bool:
    if _client is None:
        return False
    try:
        _client.admin.command("ping")
        return True
    except PyMongoError as e:
        logger.warning(f"MongoDB ping failed: {e}")
        return False


def get_db() -> Database:
    if db is None:
        raise DatabaseUnavailableError()
    return db


def ensure_indexes(database: Database) -> None:
    database["users"].create_index("firebaseUid", unique=True)
    database["projects"].create_index([("supervisorUid", ASCENDING), ("createdAt", DESCENDING)])
    database["applications"].create_index([("supervisorUid", ASCENDING), ("createdAt", DESCENDING)])
    database["applications"].create_index([("studentUid", ASCENDING), ("projectId", ASCENDING)])
    database["submissions"].create_index(
        [("studentUid", ASCENDING), ("projectId", ASCENDING), ("type", ASCENDING)], unique=True
    )
    database["logbooks"].create_index(
        [("studentUid", ASCENDING), ("projectId", ASCENDING), ("week", ASCENDING)], unique=True
    )
    database["notifications"].create_index([("userUid", ASCENDING), ("createdAt", DESCENDING)])


def create_document(database: Database, collection_name: str, data: Dict[str, Any]) -> str:
    """Insert ``data`` stamped with ``createdAt`` and return the new id as a string."""
    doc = dict(data)
    doc.setdefault("createdAt", datetime.now(timezone.utc))
    inserted_id = database[collection_name].insert_one(doc).inserted_id
    return str(inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List] = None,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
