"""Record storage for rate-sheet uploads and leads.

``InMemoryStorage`` is the default. ``SqlStorage`` is used when a SQL Server
connection string is configured and runs over the shared pyodbc pool.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from app.db.connection import db_pool
from app.db.queries import leads as lead_queries
from app.db.queries import rate_sheets as sheet_queries
from app.models.lead import Lead, LeadCreate
from app.models.rate_sheet import RateSheetRecord

logger = logging.getLogger(__name__)


class Storage(ABC):
    @abstractmethod
    def get_rate_sheets(self) -> list[RateSheetRecord]: ...

    @abstractmethod
    def get_active_rate_sheets(self) -> list[RateSheetRecord]: ...

    @abstractmethod
    def get_rate_sheet(self, sheet_id: int) -> Optional[RateSheetRecord]: ...

    @abstractmethod
    def create_rate_sheet(self, lender_name: str, file_name: str, file_data: str) -> RateSheetRecord: ...

    @abstractmethod
    def delete_rate_sheet(self, sheet_id: int) -> bool: ...

    @abstractmethod
    def toggle_rate_sheet(self, sheet_id: int, is_active: bool) -> Optional[RateSheetRecord]: ...

    @abstractmethod
    def create_lead(self, lead: LeadCreate, quoted_rates: Optional[str] = None) -> Lead: ...

    @abstractmethod
    def get_leads(self) -> list[Lead]: ...

    def count_rate_sheets(self) -> int:
        return len(self.get_rate_sheets())


class InMemoryStorage(Storage):
    """Process-local store. Reads return copies so pricing never sees a list mid-edit."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rate_sheets: list[RateSheetRecord] = []
        self._leads: list[Lead] = []
        self._next_sheet_id = 1
        self._next_lead_id = 1

    def get_rate_sheets(self) -> list[RateSheetRecord]:
        with self._lock:
            return [s.model_copy() for s in self._rate_sheets]

    def get_active_rate_sheets(self) -> list[RateSheetRecord]:
        with self._lock:
            return [s.model_copy() for s in self._rate_sheets if s.is_active]

    def get_rate_sheet(self, sheet_id: int) -> Optional[RateSheetRecord]:
        with self._lock:
            for sheet in self._rate_sheets:
                if sheet.id == sheet_id:
                    return sheet.model_copy()
        return None

    def create_rate_sheet(self, lender_name: str, file_name: str, file_data: str) -> RateSheetRecord:
        with self._lock:
            record = RateSheetRecord(
                id=self._next_sheet_id,
                lender_name=lender_name,
                file_name=file_name,
                file_data=file_data,
                is_active=True,
                uploaded_at=datetime.now(timezone.utc),
            )
            self._next_sheet_id += 1
            self._rate_sheets.append(record)
        logger.info("Stored rate sheet %d for %s (%s)", record.id, lender_name, file_name)
        return record.model_copy()

    def delete_rate_sheet(self, sheet_id: int) -> bool:
        with self._lock:
            before = len(self._rate_sheets)
            self._rate_sheets = [s for s in self._rate_sheets if s.id != sheet_id]
            return len(self._rate_sheets) < before

    def toggle_rate_sheet(self, sheet_id: int, is_active: bool) -> Optional[RateSheetRecord]:
        with self._lock:
            for idx, sheet in enumerate(self._rate_sheets):
                if sheet.id == sheet_id:
                    updated = sheet.model_copy(update={"is_active": is_active})
                    self._rate_sheets[idx] = updated
                    return updated.model_copy()
        return None

    def create_lead(self, lead: LeadCreate, quoted_rates: Optional[str] = None) -> Lead:
        with self._lock:
            stored = Lead(
                **lead.model_dump(),
                id=self._next_lead_id,
                quoted_rates=quoted_rates,
                created_at=datetime.now(timezone.utc),
            )
            self._next_lead_id += 1
            self._leads.append(stored)
        return stored.model_copy()

    def get_leads(self) -> list[Lead]:
        with self._lock:
            return [lead.model_copy() for lead in self._leads]


class SqlStorage(Storage):
    """SQL Server store; one pooled connection per call."""

    def __init__(self, pool=db_pool):
        self._pool = pool

    def _run(self, fn, *args):
        conn = self._pool.get_connection()
        try:
            return fn(conn, *args)
        finally:
            conn.close()

    def get_rate_sheets(self) -> list[RateSheetRecord]:
        return self._run(sheet_queries.list_rate_sheets)

    def get_active_rate_sheets(self) -> list[RateSheetRecord]:
        return self._run(sheet_queries.list_rate_sheets, True)

    def get_rate_sheet(self, sheet_id: int) -> Optional[RateSheetRecord]:
        return self._run(sheet_queries.get_rate_sheet, sheet_id)

    def count_rate_sheets(self) -> int:
        return self._run(sheet_queries.count_rate_sheets)

    def create_rate_sheet(self, lender_name: str, file_name: str, file_data: str) -> RateSheetRecord:
        return self._run(sheet_queries.insert_rate_sheet, lender_name, file_name, file_data)

    def delete_rate_sheet(self, sheet_id: int) -> bool:
        return self._run(sheet_queries.delete_rate_sheet, sheet_id)

    def toggle_rate_sheet(self, sheet_id: int, is_active: bool) -> Optional[RateSheetRecord]:
        return self._run(sheet_queries.set_rate_sheet_active, sheet_id, is_active)

    def create_lead(self, lead: LeadCreate, quoted_rates: Optional[str] = None) -> Lead:
        return self._run(lead_queries.insert_lead, lead, quoted_rates)

    def get_leads(self) -> list[Lead]:
        return self._run(lead_queries.list_leads)


_storage: Optional[Storage] = None


def init_storage(conn_string: str) -> Storage:
    """Pick the backend for this process; called once from the app lifespan."""
    global _storage
    if conn_string:
        logger.info("Using SQL Server storage")
        _storage = SqlStorage()
    else:
        logger.info("No SQLSERVER_CONN_STRING configured, using in-memory storage")
        _storage = InMemoryStorage()
    return _storage


def get_storage() -> Storage:
    global _storage
    if _storage is None:
        _storage = InMemoryStorage()
    return _storage
