"""
Firebase bearer-token verification.

`verify_firebase_token` is a FastAPI dependency: add it to a route's
signature (or `dependencies=[...]`) to require an `Authorization: Bearer <token>`
header. It resolves to the verified caller email.
"""

import base64
import binascii
import json
import logging
import os
import threading
from typing import Callable, Optional

import firebase_admin
from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError

load_dotenv()

logger = logging.getLogger(__name__)

UNAUTHORIZED = "unauthorized access"
FORBIDDEN = "forbidden access"

_firebase_app: Optional[firebase_admin.App] = None
_firebase_lock = threading.Lock()


class TokenVerificationError(Exception):
    """The token is missing, malformed, expired or cannot be checked."""


def load_service_account(encoded: str) -> dict:
    """Decode the base64 service-account JSON held in FIREBASE_SERVICE_KEY."""
    try:
        return json.loads(base64.b64decode(encoded).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise TokenVerificationError(f"FIREBASE_SERVICE_KEY is not valid: {e}") from e


def get_firebase_app() -> firebase_admin.App:
    global _firebase_app
    with _firebase_lock:
        if _firebase_app is not None:
            return _firebase_app

        encoded = os.getenv("FIREBASE_SERVICE_KEY")
        if not encoded:
            raise TokenVerificationError("FIREBASE_SERVICE_KEY is not set")

        service_account = load_service_account(encoded)
        try:
            _firebase_app = firebase_admin.initialize_app(credentials.Certificate(service_account))
        except ValueError as e:
            raise TokenVerificationError(f"Firebase initialization failed: {e}") from e
        return _firebase_app


def verify_id_token(token: str) -> str:
    """Verify a Firebase ID token and return its email claim."""
    if not token:
        raise TokenVerificationError("empty token")

    app = get_firebase_app()
    try:
        decoded = firebase_auth.verify_id_token(token, app=app)
    except (ValueError, FirebaseError) as e:
        raise TokenVerificationError(str(e)) from e

    email = decoded.get("email")
    if not email:
        raise TokenVerificationError("token carries no email claim")
    return email


def get_token_verifier() -> Callable[[str], str]:
    return verify_id_token


def verify_firebase_token(
    authorization: Optional[str] = Header(default=None),
    verifier: Callable[[str], str] = Depends(get_token_verifier),
) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED)

    parts = authorization.split(" ")
    token = parts[1] if len(parts) > 1 else ""
    try:
        return verifier(token)
    except TokenVerificationError as e:
        logger.warning("Token verification error: %s", e)
        raise HTTPException(status_code=401, detail=UNAUTHORIZED)
