"""Tests for CLI commands."""

import asyncio
import json

import pytest
from click.testing import CliRunner

from conftest import get_free_port
from contact_mailer.cli import main, run_async
from contact_mailer.mailer_db import MailerDb


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Invoke the CLI against a temporary database."""
    monkeypatch.setenv("MAILER_CONFIG", str(tmp_path / "missing.ini"))
    monkeypatch.setattr("contact_mailer.cli.configure_logging", lambda level: None)
    db_path = str(tmp_path / "cli.db")
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(main, ["--db", db_path, *args], **kwargs)

    invoke.db_path = db_path
    return invoke


def test_run_async():
    async def answer():
        return 42

    assert run_async(answer()) == 42


def test_init_db(cli, tmp_path):
    result = cli("init-db")
    assert result.exit_code == 0, result.output
    assert "Database ready" in result.output
    assert (tmp_path / "cli.db").exists()


def test_credentials_add_and_list(cli):
    result = cli(
        "credentials", "add", "acme",
        "--name", "noreply@acme.test",
        "--host", "smtp.acme.test", "--port", "587", "--secure",
        "--username", "mailer", "--password", "secret",
        "--api-key", "acme-credential-key",
    )
    assert result.exit_code == 0, result.output
    assert "Credential 'acme' saved." in result.output

    result = cli("credentials", "list", "--json")
    assert result.exit_code == 0, result.output
    rows = json.loads(result.output)
    assert [r["id"] for r in rows] == ["acme"]
    assert rows[0]["port"] == 587
    assert rows[0]["secure"] == 1
    assert "password" not in rows[0]
    assert "api_key_hash" not in rows[0]


def test_credentials_list_table(cli):
    cli("credentials", "add", "acme", "--name", "ACME", "--host", "smtp.acme.test", "--port", "25")
    result = cli("credentials", "list")
    assert result.exit_code == 0, result.output
    assert "Credentials (email)" in result.output


def test_credentials_add_rejects_invalid_values(cli):
    result = cli("credentials", "add", "acme", "--name", "ACME", "--port", "70000")
    assert result.exit_code == 1
    assert "port" in result.output


def test_credentials_remove(cli):
    cli("credentials", "add", "acme", "--name", "ACME", "--host", "h", "--port", "25")

    result = cli("credentials", "remove", "acme", "--force")
    assert result.exit_code == 0, result.output

    result = cli("credentials", "remove", "acme", "--force")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_credentials_remove_can_be_cancelled(cli):
    cli("credentials", "add", "acme", "--name", "ACME", "--host", "h", "--port", "25")
    result = cli("credentials", "remove", "acme", input="n\n")
    assert "Cancelled" in result.output
    assert json.loads(cli("credentials", "list", "--json").output)[0]["id"] == "acme"


def test_verify_success(cli, smtp_server):
    _, port = smtp_server
    cli("credentials", "add", "acme", "--name", "ACME", "--host", "127.0.0.1",
        "--port", str(port), "--no-secure")

    result = cli("verify", "acme")
    assert result.exit_code == 0, result.output
    assert "Connection verified" in result.output


def test_verify_failure(cli):
    cli("credentials", "add", "acme", "--name", "ACME", "--host", "127.0.0.1",
        "--port", str(get_free_port()), "--no-secure")

    result = cli("verify", "acme")
    assert result.exit_code == 1
    assert "Failed to verify email connection" in result.output


def test_verify_unknown_credential(cli):
    result = cli("verify", "ghost")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_messages_list(cli):
    assert "No messages found." in cli("messages", "list").output

    async def seed():
        db = MailerDb(cli.db_path)
        await db.init_db()
        for status in ("sent", "failed"):
            await db.messages.insert({
                "credential_id": "acme",
                "recipient": "user@example.com",
                "subject": "Hello",
                "status": status,
            })

    asyncio.run(seed())

    result = cli("messages", "list", "--status", "failed", "--json")
    assert result.exit_code == 0, result.output
    rows = json.loads(result.output)
    assert [r["status"] for r in rows] == ["failed"]

    result = cli("messages", "list")
    assert result.exit_code == 0, result.output
    assert "Outgoing messages" in result.output
