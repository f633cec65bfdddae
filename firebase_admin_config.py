import logging
import os
import threading

import firebase_admin
from firebase_admin import credentials, firestore

from config import Config

logger = logging.getLogger(__name__)

# Lazy: never initialize on import. gRPC must not be started before gunicorn forks.
_app = None
_db_client = None
_init_lock = threading.Lock()


def get_app():
    """Return the Firebase Admin app, initializing it on first use (None if disabled)."""
    global _app

    if _app is not None:
        return _app
    if not Config.FIREBASE_ENABLED:
        return None

    with _init_lock:
        if _app is not None:
            return _app
        if firebase_admin._apps:
            _app = firebase_admin.get_app()
            return _app

        service_key_path = Config.FIREBASE_CREDENTIALS
        if service_key_path:
            if not os.path.exists(service_key_path):
                logger.warning(f"⚠️ Service account key not found: {service_key_path}")
                return None
            cred = credentials.Certificate(service_key_path)
        else:
            cred = credentials.ApplicationDefault()

        logger.info("🔥 Firebase initializing (lazy)...")
        _app = firebase_admin.initialize_app(cred)
        logger.info("✅ Firebase initialized successfully")
        return _app


def get_db():
    """Get Firestore database client with lazy initialization"""
    global _db_client

    if _db_client is not None:
        return _db_client

    app = get_app()
    if app is None:
        return None
    _db_client = firestore.client(app)
    return _db_client
