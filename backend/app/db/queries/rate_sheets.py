from typing import Optional

from app.models.rate_sheet import RateSheetRecord

# Map Pydantic field names to SQL column names.
COLUMN_MAP = {
    "id": "RateSheetID",
    "lender_name": "LenderName",
    "file_name": "FileName",
    "file_data": "FileData",
    "is_active": "IsActive",
    "uploaded_at": "UploadedAt",
}

_SQL_COLUMNS = ", ".join(COLUMN_MAP.values())


def _rows_to_records(cursor) -> list[RateSheetRecord]:
    reverse_map = {v: k for k, v in COLUMN_MAP.items()}
    columns = [reverse_map.get(desc[0], desc[0]) for desc in cursor.description]
    return [RateSheetRecord(**dict(zip(columns, row))) for row in cursor.fetchall()]


def list_rate_sheets(conn, active_only: bool = False) -> list[RateSheetRecord]:
    """All stored rate sheets in upload order."""
    where = "WHERE IsActive = 1" if active_only else ""
    query = f"""
        SELECT {_SQL_COLUMNS}
        FROM RateSheets
        {where}
        ORDER BY RateSheetID
    """
    cursor = conn.cursor()
    cursor.execute(query)
    return _rows_to_records(cursor)


def get_rate_sheet(conn, sheet_id: int) -> Optional[RateSheetRecord]:
    query = f"""
        SELECT {_SQL_COLUMNS}
        FROM RateSheets
        WHERE RateSheetID = ?
    """
    cursor = conn.cursor()
    cursor.execute(query, sheet_id)
    records = _rows_to_records(cursor)
    return records[0] if records else None


def count_rate_sheets(conn) -> int:
    cursor = conn.cursor()
    cursor.execute("SELECT COUNT(*) FROM RateSheets")
    return cursor.fetchone()[0]


def insert_rate_sheet(conn, lender_name: str, file_name: str, file_data: str) -> RateSheetRecord:
    query = f"""
        INSERT INTO RateSheets (LenderName, FileName, FileData, IsActive)
        OUTPUT INSERTED.{', INSERTED.'.join(COLUMN_MAP.values())}
        VALUES (?, ?, ?, 1)
    """
    cursor = conn.cursor()
    cursor.execute(query, lender_name, file_name, file_data)
    records = _rows_to_records(cursor)
    conn.commit()
    return records[0]


def delete_rate_sheet(conn, sheet_id: int) -> bool:
    cursor = conn.cursor()
    cursor.execute("DELETE FROM RateSheets WHERE RateSheetID = ?", sheet_id)
    deleted = cursor.rowcount > 0
    conn.commit()
    return deleted


def set_rate_sheet_active(conn, sheet_id: int, is_active: bool) -> Optional[RateSheetRecord]:
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE RateSheets SET IsActive = ? WHERE RateSheetID = ?",
        1 if is_active else 0, sheet_id,
    )
    conn.commit()
    return get_rate_sheet(conn, sheet_id)
