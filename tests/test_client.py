from __future__ import annotations

import pytest

import client


@pytest.fixture(autouse=True)
def _no_dotenv(monkeypatch) -> None:
    monkeypatch.setattr(client, "load_dotenv", lambda: None)


def test_load_credentials_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_ID", "12345")
    monkeypatch.setenv("API_HASH", "hash")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.delenv("SESSION_NAME", raising=False)

    credentials = client.load_credentials()

    assert credentials.api_id == 12345
    assert credentials.api_hash == "hash"
    assert credentials.bot_token == "123:abc"
    assert credentials.session_name == "newsrelay"


def test_load_credentials_names_every_missing_secret(monkeypatch) -> None:
    monkeypatch.setenv("API_ID", "12345")
    monkeypatch.delenv("API_HASH", raising=False)
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)

    with pytest.raises(RuntimeError, match="API_HASH, TELEGRAM_BOT_TOKEN"):
        client.load_credentials()
