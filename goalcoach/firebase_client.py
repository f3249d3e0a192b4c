"""Process-wide Firestore connection for the persistence gateway."""

import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore

from goalcoach.config import Settings
from goalcoach.errors import StorageError

logger = logging.getLogger(__name__)

_db: Optional[firestore.Client] = None


def _app_credentials(settings: Settings) -> credentials.Base:
    path = settings.firebase_credentials
    if path and os.path.exists(path):
        return credentials.Certificate(path)
    if path:
        logger.warning("[Firebase] Credentials file '%s' not found; using application default credentials", path)
    return credentials.ApplicationDefault()


def get_firestore_client(settings: Settings) -> firestore.Client:
    """Connect on first use and hand back the same client afterwards.

    Reuses a Firebase app another component already initialised. Connection
    problems surface as :class:`StorageError`.
    """
    global _db
    if _db is not None:
        return _db

    try:
        app = firebase_admin.get_app()
    except ValueError:
        options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
        app = None

    try:
        if app is None:
            app = firebase_admin.initialize_app(_app_credentials(settings), options)
        _db = firestore.client(app)
    except Exception as e:
        raise StorageError(f"Could not connect to Firestore: {e}") from e

    logger.info("[Firebase] Connected to Firestore (project=%s)", settings.firebase_project_id or "default")
    return _db
