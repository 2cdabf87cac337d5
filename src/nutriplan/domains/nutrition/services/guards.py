"""Translate storage-layer failures into the public error taxonomy."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from nutriplan.core.storage.database import DatabaseError
from nutriplan.core.storage.encryption import EncryptionError
from nutriplan.core.storage.repository import RepositoryError
from nutriplan.domains.nutrition.errors import CacheUnavailableError

logger = logging.getLogger(__name__)


@contextmanager
def storage_guard(operation: str) -> Iterator[None]:
    """Re-raise storage failures as :class:`CacheUnavailableError` (fail closed)."""
    try:
        yield
    except (sqlite3.Error, DatabaseError, RepositoryError, EncryptionError) as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise CacheUnavailableError() from exc
