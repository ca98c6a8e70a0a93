import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

from auth import FORBIDDEN, verify_firebase_token
from database import (
    BIDS,
    DESCENDING,
    PRODUCTS,
    USERS,
    DatabaseUnavailable,
    close_client,
    create_document,
    delete_document,
    find_document,
    get_database_name,
    get_database_url,
    get_db,
    get_db_if_configured,
    get_documents,
    is_valid_id,
    serialize_delete,
    serialize_insert,
    serialize_update,
    update_document,
)
from schemas import Bid, Product, ProductUpdate, User

logger = logging.getLogger(__name__)

LATEST_PRODUCTS_LIMIT = 6
INTERNAL_ERROR = "Internal server error"


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_client()


app = FastAPI(title="Smart server", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DatabaseUnavailable)
@app.exception_handler(PyMongoError)
async def database_error_handler(request, exc):
    # Raised while resolving get_db, before a route body runs
    logger.error("Error in %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": INTERNAL_ERROR})


def internal_error(route: str, e: Exception) -> HTTPException:
    logger.error("Error in %s: %s", route, e)
    return HTTPException(status_code=500, detail=INTERNAL_ERROR)


def require_valid_id(value: str, kind: str) -> ObjectId:
    if not is_valid_id(value):
        raise HTTPException(status_code=400, detail=f"Invalid {kind} ID")
    return ObjectId(value)


@app.get("/")
def read_root():
    return {"message": "Smart server is running"}


@app.get("/test")
def test_database(db: Optional[Database] = Depends(get_db_if_configured)):
    """Test endpoint to check if database is available and accessible"""
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if get_database_url() else "❌ Not Set",
        "database_name": get_database_name(),
        "connection_status": "Not Connected",
        "collections": [],
    }

    if db is None:
        response["database"] = "❌ Database not configured (set MONGODB_URI)"
        return response

    response["database"] = "✅ Available"
    try:
        collections = db.list_collection_names()
        response["collections"] = collections[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    return response


# ============================================================================
# USERS
# ============================================================================

@app.post("/users")
def create_user(user: Optional[User] = None, db: Database = Depends(get_db)):
    """Insert a user unless one with the same email already exists.

    The existence check and the insert are two separate operations, so two
    concurrent requests for the same email can both insert.
    """
    user = user or User()
    if not user.email:
        raise HTTPException(status_code=400, detail="Email is required")

    try:
        existing_user = find_document(db, USERS, {"email": user.email})
        if existing_user:
            return {"message": "user already exists. do not need to insert again"}
        return serialize_insert(create_document(db, USERS, user))
    except Exception as e:
        raise internal_error("/users", e)


# ============================================================================
# PRODUCTS
# ============================================================================

@app.get("/products")
def list_products(email: Optional[str] = Query(default=None), db: Database = Depends(get_db)):
    try:
        query = {"email": email} if email else {}
        return get_documents(db, PRODUCTS, query)
    except Exception as e:
        raise internal_error("/products", e)


@app.get("/latest-products")
def latest_products(db: Database = Depends(get_db)):
    try:
        return get_documents(
            db, PRODUCTS, sort=("created_at", DESCENDING), limit=LATEST_PRODUCTS_LIMIT
        )
    except Exception as e:
        raise internal_error("/latest-products", e)


@app.get("/products/bids/{product_id}")
def product_bids(product_id: str, db: Database = Depends(get_db)):
    """Bids placed on a product, highest bid first"""
    try:
        return get_documents(db, BIDS, {"product": product_id}, sort=("bid_price", DESCENDING))
    except Exception as e:
        raise internal_error("/products/bids/:productId", e)


@app.get("/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    object_id = require_valid_id(product_id, "product")
    try:
        product = find_document(db, PRODUCTS, {"_id": object_id})
        return product or {"message": "Product not found"}
    except Exception as e:
        raise internal_error("/products/:id", e)


@app.post("/products", dependencies=[Depends(verify_firebase_token)])
def create_product(product: Optional[Product] = None, db: Database = Depends(get_db)):
    try:
        return serialize_insert(create_document(db, PRODUCTS, product or Product()))
    except Exception as e:
        raise internal_error("/products POST", e)


@app.patch("/products/{product_id}")
def update_product(
    product_id: str,
    product: Optional[ProductUpdate] = None,
    db: Database = Depends(get_db),
):
    object_id = require_valid_id(product_id, "product")
    try:
        result = update_document(db, PRODUCTS, {"_id": object_id}, product or ProductUpdate())
        return serialize_update(result)
    except Exception as e:
        raise internal_error("/products/:id PATCH", e)


@app.delete("/products/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db)):
    object_id = require_valid_id(product_id, "product")
    try:
        return serialize_delete(delete_document(db, PRODUCTS, {"_id": object_id}))
    except Exception as e:
        raise internal_error("/products/:id DELETE", e)


# ============================================================================
# BIDS
# ============================================================================

@app.get("/bids")
def list_bids(
    email: Optional[str] = Query(default=None),
    token_email: str = Depends(verify_firebase_token),
    db: Database = Depends(get_db),
):
    """Bids of one buyer; callers may only ask for their own email"""
    query = {}
    if email:
        if email != token_email:
            raise HTTPException(status_code=403, detail=FORBIDDEN)
        query["buyer_email"] = email

    try:
        return get_documents(db, BIDS, query)
    except Exception as e:
        raise internal_error("/bids", e)


@app.post("/bids")
def create_bid(bid: Optional[Bid] = None, db: Database = Depends(get_db)):
    try:
        return serialize_insert(create_document(db, BIDS, bid or Bid()))
    except Exception as e:
        raise internal_error("/bids POST", e)


@app.delete("/bids/{bid_id}")
def delete_bid(bid_id: str, db: Database = Depends(get_db)):
    object_id = require_valid_id(bid_id, "bid")
    try:
        return serialize_delete(delete_document(db, BIDS, {"_id": object_id}))
    except Exception as e:
        raise internal_error("/bids/:id DELETE", e)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
