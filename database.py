"""
MongoDB access helpers.

The client is created lazily from DATABASE_URL / DATABASE_NAME. Route handlers
receive the database through the ``get_db`` dependency so tests can swap in
another one.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from fastapi import Depends
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings, get_settings
from errors import DatabaseUnavailableError

_clients: Dict[str, MongoClient] = {}


def utc_now() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back by default."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def ensure_indexes(db: Database) -> None:
    """Promo codes are looked up by code, which must stay unique."""
    db["promocode"].create_index([("code", ASCENDING)], unique=True)


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url or not settings.database_name:
        return None
    key = f"{settings.database_url}|{settings.database_name}"
    client = _clients.get(key)
    if client is None:
        client = MongoClient(settings.database_url)
        ensure_indexes(client[settings.database_name])
        _clients[key] = client
    return client[settings.database_name]


def get_db(settings: Settings = Depends(get_settings)) -> Database:
    db = connect(settings)
    if db is None:
        raise DatabaseUnavailableError()
    return db


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out


def plain(value: Any) -> Any:
    """Strip enums down to their stored values, recursively."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(v) for v in value]
    return value


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data_dict = plain(data.model_dump())
    else:
        data_dict = plain(dict(data))
    data_dict.pop("id", None)
    now = utc_now()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
