from typing import Optional

from app.models.lead import Lead, LeadCreate

# Map Pydantic field names to SQL column names.
COLUMN_MAP = {
    "id": "LeadID",
    "first_name": "FirstName",
    "last_name": "LastName",
    "email": "Email",
    "phone": "Phone",
    "zip_code": "ZipCode",
    "loan_amount": "LoanAmount",
    "property_value": "PropertyValue",
    "loan_purpose": "LoanPurpose",
    "refinance_type": "RefinanceType",
    "credit_score": "CreditScore",
    "loan_term": "LoanTerm",
    "loan_type": "LoanType",
    "property_type": "PropertyType",
    "state": "State",
    "annual_income": "AnnualIncome",
    "is_first_time_buyer": "IsFirstTimeBuyer",
    "quoted_rates": "QuotedRates",
    "created_at": "CreatedAt",
}

_SQL_COLUMNS = ", ".join(COLUMN_MAP.values())
_INSERT_FIELDS = [f for f in COLUMN_MAP if f not in ("id", "created_at")]


def _rows_to_leads(cursor) -> list[Lead]:
    reverse_map = {v: k for k, v in COLUMN_MAP.items()}
    columns = [reverse_map.get(desc[0], desc[0]) for desc in cursor.description]
    return [Lead(**dict(zip(columns, row))) for row in cursor.fetchall()]


def list_leads(conn) -> list[Lead]:
    query = f"""
        SELECT {_SQL_COLUMNS}
        FROM Leads
        ORDER BY CreatedAt DESC
    """
    cursor = conn.cursor()
    cursor.execute(query)
    return _rows_to_leads(cursor)


def insert_lead(conn, lead: LeadCreate, quoted_rates: Optional[str]) -> Lead:
    """Insert a lead with its quoted-rates snapshot and return the stored row."""
    values = lead.model_dump(mode="json")
    values["quoted_rates"] = quoted_rates

    columns = ", ".join(COLUMN_MAP[f] for f in _INSERT_FIELDS)
    placeholders = ", ".join("?" for _ in _INSERT_FIELDS)
    query = f"""
        INSERT INTO Leads ({columns})
        OUTPUT INSERTED.{', INSERTED.'.join(COLUMN_MAP.values())}
        VALUES ({placeholders})
    """
    cursor = conn.cursor()
    cursor.execute(query, *[values.get(f) for f in _INSERT_FIELDS])
    leads = _rows_to_leads(cursor)
    conn.commit()
    return leads[0]
