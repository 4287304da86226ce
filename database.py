"""
Database handle

Wraps a MongoDB connection with an explicit lifecycle: open it at startup
with `connect()`, close it at shutdown with `close()`. Services receive the
handle (or the underlying pymongo database) at construction time.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database as MongoDatabase

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    # Mongo hands datetimes back naive (UTC); keep ours comparable
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    def __init__(self, url: Optional[str] = None, name: Optional[str] = None, db: Optional[MongoDatabase] = None):
        self.url = url
        self.name = name
        self._client: Optional[MongoClient] = None
        self._db = db

    def connect(self) -> "Database":
        if self._db is None:
            self._client = MongoClient(self.url)
            self._db = self._client[self.name]
            logger.info("Connected to MongoDB database %s", self.name)
        self.ensure_indexes()
        return self

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("Closed MongoDB connection")
        self._client = None

    @property
    def db(self) -> MongoDatabase:
        if self._db is None:
            raise RuntimeError("Database is not connected")
        return self._db

    def __getitem__(self, collection: str):
        return self.db[collection]

    def ensure_indexes(self) -> None:
        self["user"].create_index([("email", ASCENDING)], unique=True)
        self["user"].create_index([("reset_password_token", ASCENDING)])
        self["user"].create_index([("email_verification_token", ASCENDING)])
        self["cart"].create_index([("user_id", ASCENDING)], unique=True)
        self["wishlist"].create_index([("user_id", ASCENDING)], unique=True)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with timestamps and return its id as a string."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    if doc.get("created_at") is None:
        doc["created_at"] = now
    doc["updated_at"] = now
    doc.pop("id", None)
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def to_object_id(value: str) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    # Convert ObjectId in nested fields if any
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, list):
            doc[k] = [str(i) if isinstance(i, ObjectId) else i for i in v]
    return doc
