"""
MongoDB connection and small document helpers.

The connection is configured from the environment:

- DATABASE_URL  -> mongo connection string
- DATABASE_NAME -> database to use

Collection names are the lowercase schema class names (see schemas.py).
"""
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import InternalError, ValidationError

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "storefront")

CART = "cart"
COUPON = "coupon"
ORDER = "order"
PRODUCT = "product"
WISHLIST = "wishlist"

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db() -> Database:
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise InternalError("Database is not configured.")
    return db


def ensure_indexes(database: Database) -> None:
    database[COUPON].create_index("code", unique=True)
    database[CART].create_index("user_id", unique=True)
    database[WISHLIST].create_index("user_id", unique=True)
    database[ORDER].create_index([("user_id", 1), ("created_at", -1)])


def to_object_id(id_str: str) -> ObjectId:
    if not id_str or not ObjectId.is_valid(id_str):
        raise ValidationError("Invalid ID format.")
    return ObjectId(id_str)


def create_document(database: Database, collection_name: str, data) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = datetime.utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    inserted_id = database[collection_name].insert_one(doc).inserted_id
    return str(inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  sort: Optional[List] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
