"""
Database access for the Nikkei store API.

The MongoDB handle is owned by the application: it is opened in the FastAPI
lifespan, kept on ``app.state.db`` and handed to every repository. Collection
names are the lowercase entity names (see schemas.py).
"""
import os
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from bson import ObjectId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import AsyncMongoClient

load_dotenv()

logger = structlog.get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "nikkeidb")

# collection -> fields carrying a unique index
UNIQUE_INDEXES = {
    "profile": ["name"],
    "category": ["name"],
    "client": ["national_id"],
    "user": ["email", "client_id"],
    "cart": ["client_id"],
}


def open_client(url: Optional[str] = None) -> AsyncMongoClient:
    url = url or DATABASE_URL
    logger.info("database.open", database_name=DATABASE_NAME)
    return AsyncMongoClient(url)


async def ensure_indexes(db) -> None:
    for collection, fields in UNIQUE_INDEXES.items():
        for field in fields:
            await db[collection].create_index(field, unique=True)
    logger.info("database.indexes_ready", collections=sorted(UNIQUE_INDEXES))


def parse_id(value: Any) -> Optional[ObjectId]:
    """Return the ObjectId for ``value`` or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def new_id() -> str:
    return str(ObjectId())


def now() -> datetime:
    return datetime.now(timezone.utc)


def encode(value: Any) -> Any:
    # BSON has no date-only type
    if isinstance(value, dict):
        return {k: encode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [encode(v) for v in value]
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time())
    return value


def to_dict(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


async def create_document(db, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = encode(dict(data))
    res = await db[collection_name].insert_one(doc)
    return str(res.inserted_id)


async def get_documents(db, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                        sort: Optional[list] = None) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {}, sort=sort)
    return [to_dict(doc) async for doc in cursor]
