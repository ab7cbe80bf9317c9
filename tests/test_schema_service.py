import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import StaticPool

from forms_approval.services.schema_service import check_tables, drop_schema, ensure_schema

LEGACY_TABLE = """
CREATE TABLE forms_approvals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_ip VARCHAR(45),
    visitor_ip VARCHAR(45),
    session_id VARCHAR(255) NOT NULL,
    form_id BIGINT NOT NULL,
    form_name VARCHAR(255) NOT NULL,
    fields JSON NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'pending',
    decision VARCHAR(50),
    created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
    telegram_message_id BIGINT
)
"""


@pytest.fixture
def bare_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    yield engine
    engine.dispose()


def _insert(connection, visitor_ip):
    connection.execute(
        text(
            "INSERT INTO forms_approvals (visitor_ip, session_id, form_id, form_name, fields) "
            "VALUES (:ip, 'sess-1', 1, 'Login', '[\"a: b\"]')"
        ),
        {"ip": visitor_ip},
    )


class TestEnsureSchema:
    def test_creates_missing_tables(self, bare_engine):
        assert check_tables(bare_engine) is False

        ensure_schema(bare_engine)

        assert check_tables(bare_engine) is True
        assert "form_entries" not in inspect(bare_engine).get_table_names()

    def test_upgrades_legacy_table(self, bare_engine):
        with bare_engine.begin() as connection:
            connection.execute(text(LEGACY_TABLE))
            _insert(connection, "203.0.113.9")
            _insert(connection, "")
            _insert(connection, None)

        ensure_schema(bare_engine)

        columns = {column["name"] for column in inspect(bare_engine).get_columns("forms_approvals")}
        assert "user_ip" not in columns
        with bare_engine.connect() as connection:
            rows = connection.execute(text("SELECT visitor_ip FROM forms_approvals")).all()
        assert [row[0] for row in rows] == ["203.0.113.9"]

    def test_is_idempotent(self, bare_engine):
        ensure_schema(bare_engine)
        ensure_schema(bare_engine)

        assert check_tables(bare_engine) is True


class TestCheckTables:
    def test_missing_column(self, bare_engine):
        ensure_schema(bare_engine)
        with bare_engine.begin() as connection:
            connection.execute(text("DROP TABLE forms_approval_sessions"))
            connection.execute(text("CREATE TABLE forms_approval_sessions (session_id VARCHAR(255) PRIMARY KEY)"))

        assert check_tables(bare_engine) is False

    def test_drop_schema(self, bare_engine):
        ensure_schema(bare_engine)

        drop_schema(bare_engine)

        assert check_tables(bare_engine) is False
        assert inspect(bare_engine).get_table_names() == []
