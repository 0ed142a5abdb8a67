"""
Persistence port for course rule sets.

The engine only depends on the two async callables below; the host decides
where documents live. Both supplied stores speak the export document shape
(see `PricingEngine.export_pricing_data`).
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from teeprice.exceptions import PersistenceError
from teeprice.models import PricingDocument

logger = logging.getLogger(__name__)


class PricingLoader(Protocol):
    async def load(self, course_id: str) -> Optional[dict]:
        """Return the stored document, or None when the course has none."""
        ...


class PricingSaver(Protocol):
    async def save(self, course_id: str, payload: dict) -> None:
        ...


class PricingStore(PricingLoader, PricingSaver, Protocol):
    pass


class SqlPricingStore:
    """Documents in the `pricing_documents` table, one row per course."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def _load_sync(self, course_id: str) -> Optional[dict]:
        db = self._session_factory()
        try:
            row = db.query(PricingDocument).filter(PricingDocument.course_id == course_id).first()
            if not row:
                return None
            return json.loads(row.payload)
        finally:
            db.close()

    def _save_sync(self, course_id: str, payload: dict) -> None:
        db = self._session_factory()
        try:
            row = db.query(PricingDocument).filter(PricingDocument.course_id == course_id).first()
            body = json.dumps(payload)
            if row:
                row.payload = body
                row.updated_at = datetime.now()
            else:
                db.add(PricingDocument(course_id=course_id, payload=body))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def load(self, course_id: str) -> Optional[dict]:
        try:
            return await asyncio.to_thread(self._load_sync, course_id)
        except (SQLAlchemyError, ValueError) as e:
            raise PersistenceError(f"Could not load pricing for {course_id}: {str(e)[:200]}") from e

    async def save(self, course_id: str, payload: dict) -> None:
        try:
            await asyncio.to_thread(self._save_sync, course_id, payload)
        except (SQLAlchemyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not save pricing for {course_id}: {str(e)[:200]}") from e


class InMemoryPricingStore:
    """Keeps serialized documents in a dict. For tests and single-process demos."""

    def __init__(self):
        self._documents: Dict[str, str] = {}

    async def load(self, course_id: str) -> Optional[dict]:
        body = self._documents.get(course_id)
        return json.loads(body) if body is not None else None

    async def save(self, course_id: str, payload: dict) -> None:
        self._documents[course_id] = json.dumps(payload)

    def __contains__(self, course_id: str) -> bool:
        return course_id in self._documents
