from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import URL, make_url

TEST_DB_MARKER = "test"
ALLOWED_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "postgres", "loyalty_postgres"})

LEDGER_TABLES = (
    "claim_codes",
    "idempotency_records",
    "ledger_transactions",
    "member_ledgers",
    "pos_api_keys",
    "programs",
)


@dataclass(frozen=True, slots=True)
class IntegrationDbSafetyResult:
    is_safe: bool
    reason: str
    database_name: str
    host: str


def _unsafe_reason(url: URL) -> str | None:
    db_name = (url.database or "").strip()
    host = (url.host or "").strip().lower()

    if url.get_backend_name() != "postgresql":
        return "Integration tests support only PostgreSQL test databases."
    if not db_name:
        return "Database name is empty."
    if TEST_DB_MARKER not in db_name.lower():
        return f"Database name must clearly indicate a test database (contain '{TEST_DB_MARKER}')."
    if host not in ALLOWED_LOCAL_HOSTS:
        return "Host is not in allowed local integration-test hosts."
    return None


def assess_integration_db_safety(database_url: str) -> IntegrationDbSafetyResult:
    url = make_url(database_url)
    reason = _unsafe_reason(url)
    return IntegrationDbSafetyResult(
        is_safe=reason is None,
        reason=reason or "ok",
        database_name=(url.database or "").strip(),
        host=(url.host or "").strip().lower(),
    )


def truncate_ledger_tables_sql() -> str:
    return f"TRUNCATE TABLE {', '.join(LEDGER_TABLES)} RESTART IDENTITY CASCADE"


def assert_safe_integration_db(database_url: str) -> None:
    result = assess_integration_db_safety(database_url)
    if result.is_safe:
        return

    raise RuntimeError(
        "Refusing to run integration tests with destructive TRUNCATE.\n"
        f"Reason: {result.reason}\n"
        f"Resolved DB: name='{result.database_name}' host='{result.host}'\n"
        "Required: use a dedicated local PostgreSQL test DB, e.g. 'loyalty_test'."
    )
