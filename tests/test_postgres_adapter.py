"""PostgreSQL adapter: placeholder conversion, and the send workflow on a real server.

The integration tests need Docker and testcontainers; they are skipped otherwise.
"""

import pytest
import pytest_asyncio

from conftest import smtp_credential_row
from contact_mailer.sql.adapters.postgresql import _convert_placeholders


def test_convert_placeholders_keeps_casts():
    query = "SELECT :value::text AS v FROM t WHERE id = :id AND name = :name_2"
    assert _convert_placeholders(query) == (
        "SELECT %(value)s::text AS v FROM t WHERE id = %(id)s AND name = %(name_2)s"
    )


@pytest.fixture(scope="session")
def pg_container():
    """Spin up a PostgreSQL container and return its connection URL."""
    pytest.importorskip("psycopg")
    try:
        from testcontainers.postgres import PostgresContainer
    except ImportError:
        pytest.skip("testcontainers not installed")

    with PostgresContainer("postgres:15") as postgres:
        url = postgres.get_connection_url()
        yield url.replace("postgresql+psycopg2://", "postgresql://")


@pytest_asyncio.fixture
async def pg_core(pg_container, factories):
    from contact_mailer.core import MailerCore
    from contact_mailer.transport import TransportResolver

    svc = MailerCore(db_path=pg_container)
    svc.resolver = TransportResolver(svc.credentials, smtp_factory=factories.smtp)
    await svc.init()
    yield svc
    for table in ("message_attachments", "outgoing_messages", "credentials"):
        await svc.db.adapter.execute(f"DELETE FROM {table}")
    await svc.close()


@pytest.mark.asyncio
@pytest.mark.postgres
async def test_send_and_rollback_on_postgres(pg_core):
    from contact_mailer.errors import CredentialNotFound

    await pg_core.credentials.add(smtp_credential_row(2525))
    message = {"to": "user@example.com", "subject": "Hi", "text": "Hello", "cc": ["a@example.com"]}

    result = await pg_core.send_email("acme", message)
    row = await pg_core.db.messages.select_one(where={"id": result.message_id})
    assert row["status"] == "sent"
    assert row["cc"] == ["a@example.com"]

    with pytest.raises(CredentialNotFound):
        await pg_core.send_email("ghost", message)
    assert await pg_core.db.messages.count() == 1
