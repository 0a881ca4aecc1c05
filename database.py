"""
MongoDB connection lifecycle and small collection helpers.

One MongoClient is shared by the whole process. It is created by
``init_db`` when the application starts and released by ``close_db`` on
shutdown; request handlers obtain the database through ``get_db``.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def init_db(client: Optional[MongoClient] = None) -> Database:
    """Connect once and return the database handle.

    A ready-made client (for example a mongomock one) may be passed in;
    otherwise a pooled client is built from DATABASE_URL. Calls after the
    first return the existing handle.
    """
    global _client, _db
    if _db is not None:
        return _db

    if client is None:
        client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
    handle = client[config.DATABASE_NAME]
    # publish only once the unique indexes exist
    ensure_indexes(handle)
    _client = client
    _db = handle
    logger.info("Connected to MongoDB database %s", config.DATABASE_NAME)
    return _db


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _db = None


def get_db() -> Database:
    if _db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return _db


def ensure_indexes(db: Database) -> None:
    # uniqueness lives in the store, writers handle DuplicateKeyError
    db["subscriber"].create_index([("email", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["comment"].create_index([("contentId", ASCENDING), ("date", DESCENDING)])
    db["content"].create_index([("date", DESCENDING)])


def create_document(db: Database, collection: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert one document stamped with createdAt/updatedAt and return its id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True)
    else:
        doc = dict(data)
    now = datetime.now(timezone.utc)
    doc["createdAt"] = now
    doc["updatedAt"] = now
    result = db[collection].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
