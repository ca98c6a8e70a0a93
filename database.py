# Example usage:
# from database import get_db, create_document, get_documents, update_document, delete_document
#
# db = get_db()
#
# # Create a product
# result = create_document(db, "products", {"name": "Lamp", "price": 20})
#
# # Newest six products
# latest = get_documents(db, "products", sort=("created_at", DESCENDING), limit=6)
#
# # Update a product
# update_document(db, "products", {"_id": result.inserted_id}, {"price": 25})
#
# # Delete a product
# delete_document(db, "products", {"_id": result.inserted_id})

import logging
import os
import threading
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

from bson import Decimal128, ObjectId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult
from pymongo.server_api import ServerApi

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "smart_db"
CONNECT_TIMEOUT_MS = 10000
SOCKET_TIMEOUT_MS = 10000

USERS = "users"
PRODUCTS = "products"
BIDS = "bids"

_client: Optional[MongoClient] = None
_client_lock = threading.Lock()


class DatabaseUnavailable(Exception):
    """Raised when no connection string is configured."""


def get_database_url() -> Optional[str]:
    return os.getenv("MONGODB_URI") or os.getenv("DATABASE_URL")


def get_database_name() -> str:
    return os.getenv("DATABASE_NAME") or DEFAULT_DATABASE_NAME


def get_client() -> MongoClient:
    """Return the process-wide client, creating it on first use."""
    global _client
    with _client_lock:
        if _client is not None:
            return _client

        database_url = get_database_url()
        if not database_url:
            raise DatabaseUnavailable("Database not available. Check MONGODB_URI environment variable.")

        _client = MongoClient(
            database_url,
            server_api=ServerApi("1", strict=True, deprecation_errors=True),
            connectTimeoutMS=CONNECT_TIMEOUT_MS,
            socketTimeoutMS=SOCKET_TIMEOUT_MS,
        )
        logger.info("Connected to MongoDB")
        return _client


def close_client() -> None:
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
            _client = None
            logger.info("MongoDB connection closed")


def get_db() -> Database:
    """FastAPI dependency yielding the smart_db database."""
    return get_client()[get_database_name()]


def get_db_if_configured() -> Optional[Database]:
    """Like get_db, but None when no connection string is set."""
    if not get_database_url():
        return None
    return get_db()


def is_valid_id(value: str) -> bool:
    return ObjectId.is_valid(value)


def _to_json_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {key: _to_json_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_json_value(item) for item in value]
    return value


def serialize_document(doc: Optional[dict]) -> Optional[dict]:
    """Convert ObjectId (at any depth) to string and Decimal128 to Decimal for JSON serialization"""
    if doc is None:
        return None
    return _to_json_value(doc)


def serialize_insert(result: InsertOneResult) -> dict:
    return {"acknowledged": result.acknowledged, "insertedId": str(result.inserted_id)}


def serialize_update(result: UpdateResult) -> dict:
    return {
        "acknowledged": result.acknowledged,
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
        "upsertedId": str(result.upserted_id) if result.upserted_id is not None else None,
    }


def serialize_delete(result: DeleteResult) -> dict:
    return {"acknowledged": result.acknowledged, "deletedCount": result.deleted_count}


# Helper functions for common database operations
def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> InsertOneResult:
    """Insert a single document

    Args:
        db: Database handle obtained from get_db
        collection_name: Name of the MongoDB collection
        data: Pydantic model instance or dict. Unknown fields are stored as-is.

    Returns:
        InsertOneResult: The driver acknowledgment, carrying the new ObjectId
    """
    # Convert Pydantic model to dict if needed
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_unset=True)
    else:
        data_dict = dict(data)

    data_dict.setdefault("created_at", datetime.now(timezone.utc))
    data_dict.pop("_id", None)

    return db[collection_name].insert_one(data_dict)


def find_document(db: Database, collection_name: str, filter_dict: dict) -> Optional[dict]:
    return serialize_document(db[collection_name].find_one(filter_dict))


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: dict = None,
    sort: Tuple[str, int] = None,
    limit: int = None,
):
    """Get documents from collection, optionally sorted and capped"""
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(*sort)
    if limit:
        cursor = cursor.limit(limit)

    return [serialize_document(doc) for doc in cursor]


def update_document(
    db: Database, collection_name: str, filter_dict: dict, update_data: Union[BaseModel, dict]
) -> UpdateResult:
    """Apply a $set update to a single document

    Args:
        db: Database handle obtained from get_db
        collection_name: Name of the MongoDB collection
        filter_dict: MongoDB filter to find the document to update
        update_data: Pydantic model instance or dict with fields to set

    Returns:
        UpdateResult: matched/modified counts from the driver
    """
    # Convert Pydantic model to dict if needed
    if isinstance(update_data, BaseModel):
        update_dict = update_data.model_dump()
    else:
        update_dict = dict(update_data)

    return db[collection_name].update_one(filter_dict, {"$set": update_dict})


def delete_document(db: Database, collection_name: str, filter_dict: dict) -> DeleteResult:
    """Delete a document"""
    return db[collection_name].delete_one(filter_dict)

