# auth.py
"""Identity collaborator: resolves the caller from a Firebase ID token."""
import logging
from typing import Optional, Dict

from firebase_admin import auth as firebase_auth
from flask import request

from firebase_admin_config import get_app

logger = logging.getLogger(__name__)


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[7:].strip() or None
    return request.cookies.get("token")


def me() -> Optional[Dict[str, str]]:
    """{id, email, full_name} of the authenticated caller, or None."""
    token = _bearer_token()
    if not token:
        return None
    app = get_app()
    if app is None:
        return None
    try:
        decoded = firebase_auth.verify_id_token(token, app=app)
    except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.CertificateFetchError) as e:
        logger.info(f"🔒 Rejected ID token: {e}")
        return None
    return {
        "id": decoded["uid"],
        "email": decoded.get("email"),
        "full_name": decoded.get("name"),
    }


def resolve_user(user_id: Optional[str], name: Optional[str] = None):
    """Explicit userId wins; otherwise fall back to the signed-in user (email, then uid)."""
    if user_id:
        return user_id, name
    user = me()
    if not user:
        return None, name
    return user.get("email") or user["id"], name or user.get("full_name")
