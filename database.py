"""
MongoDB access for the booking service.

Collections are named after the lowercase pydantic schema class
(`profile`, `settings`, `service`, `appointment`). Helpers take the
database handle explicitly so request handlers can receive it through
a FastAPI dependency.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import DATABASE_NAME, DATABASE_URL
from errors import StoreError

logger = logging.getLogger(__name__)

ACTIVE_APPOINTMENT_STATUSES = ["pendente", "confirmado", "concluido"]

db: Optional[Database] = None

try:
    _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000, tz_aware=True)
    db = _client[DATABASE_NAME]
    logger.info(f"MongoDB client configured for database '{DATABASE_NAME}'")
except (PyMongoError, ValueError) as e:
    logger.error(f"Failed to configure MongoDB client: {e}")
    db = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: Optional[str]) -> Optional[ObjectId]:
    """Return an ObjectId for a hex string, or None when it is not one."""
    if not value:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id.

    DuplicateKeyError is propagated so callers can map unique index hits
    to their own errors; any other driver failure becomes StoreError.
    """
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = _now()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    try:
        result = database[collection_name].insert_one(doc)
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        logger.error(f"Insert into '{collection_name}' failed: {e}")
        raise StoreError() from e
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    try:
        cursor = database[collection_name].find(filter_dict or {}, projection)
        if sort:
            cursor = cursor.sort(list(sort))
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)
    except PyMongoError as e:
        logger.error(f"Read from '{collection_name}' failed: {e}")
        raise StoreError() from e


def get_document(database: Database, collection_name: str, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        return database[collection_name].find_one(filter_dict)
    except PyMongoError as e:
        logger.error(f"Read from '{collection_name}' failed: {e}")
        raise StoreError() from e


def update_document(
    database: Database,
    collection_name: str,
    filter_dict: Dict[str, Any],
    updates: Dict[str, Any],
    upsert: bool = False,
) -> Optional[Dict[str, Any]]:
    """Apply a $set and return the document as stored afterwards."""
    now = _now()
    change: Dict[str, Any] = {"$set": {**updates, "updated_at": now}}
    if upsert:
        change["$setOnInsert"] = {"created_at": now}
    try:
        return database[collection_name].find_one_and_update(
            filter_dict, change, upsert=upsert, return_document=ReturnDocument.AFTER
        )
    except PyMongoError as e:
        logger.error(f"Update of '{collection_name}' failed: {e}")
        raise StoreError() from e


def ensure_indexes(database: Database) -> None:
    """Create the indexes the booking flow relies on."""
    database["profile"].create_index([("slug", ASCENDING)], unique=True, sparse=True, name="profile_slug_unique")
    database["profile"].create_index([("user_id", ASCENDING)], unique=True, name="profile_owner_unique")
    # One live appointment per business, date and time. Cancelled ones free their slot.
    database["appointment"].create_index(
        [("user_id", ASCENDING), ("date", ASCENDING), ("time", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": {"$in": ACTIVE_APPOINTMENT_STATUSES}},
        name="appointment_slot_unique",
    )
    database["service"].create_index([("user_id", ASCENDING), ("status", ASCENDING)], name="service_owner_status")
    database["settings"].create_index([("user_id", ASCENDING)], unique=True, name="settings_owner_unique")
    logger.info("MongoDB indexes ensured")
