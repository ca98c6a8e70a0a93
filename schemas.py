"""
Database Schemas

MongoDB collection schemas for smart_db, written as Pydantic models.
Documents are loosely typed: every model accepts extra fields and stores them
untouched, so the models only name the fields the API reads or writes.

Collections:
- users     -> User
- products  -> Product (PATCH body: ProductUpdate)
- bids      -> Bid
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class Document(BaseModel):
    model_config = ConfigDict(extra="allow")


class User(Document):
    # Required by POST /users; only its presence is checked, so a missing email is a 400
    email: Optional[Any] = None


class Product(Document):
    name: Optional[Any] = None
    price: Optional[Any] = None
    email: Optional[Any] = None
    created_at: Optional[Any] = None


class ProductUpdate(BaseModel):
    """Only name and price are ever written; absent fields are stored as null."""

    name: Optional[Any] = None
    price: Optional[Any] = None


class Bid(Document):
    product: Optional[Any] = None
    buyer_email: Optional[Any] = None
    bid_price: Optional[Any] = None
