from __future__ import annotations

from pathlib import Path

import pytest

from smartmail import cli
from smartmail.exceptions import SmartmailGatewayError, SmartmailTransportError
from smartmail.listener import Listener
from smartmail.notify import ThreemaGateway

_ENV = {
    "TTN_APP_ID": "app",
    "TTN_ACCESS_KEY": "key",
    "THREEMA_FROM": "*SMARTMA",
    "THREEMA_TO": "ECHOECHO",
    "THREEMA_SECRET": "s3cret",
    "THREEMA_PRIVATE_KEY": "private:" + "11" * 32,
}


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> pytest.MonkeyPatch:
    monkeypatch.chdir(tmp_path)
    for key in (*_ENV, "INFLUXDB_USER", "INFLUXDB_PASS", "INFLUXDB_DB", "INFLUXDB_URL"):
        # setenv first so teardown also removes values loaded from .env files
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


def test_missing_configuration_exits_1(clean_env: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--no-banner"]) == 1
    assert "Missing TTN_APP_ID env var" in capsys.readouterr().err


def test_env_file_is_loaded(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    env_file = tmp_path / "smartmail.env"
    env_file.write_text("\n".join(f"{key}={value}" for key, value in _ENV.items() if key != "THREEMA_TO"))

    # Still missing THREEMA_TO, but the other variables must have been read.
    assert cli.main(["--no-banner", "--env-file", str(env_file)]) == 1


def test_gateway_failure_exits_2(clean_env: pytest.MonkeyPatch) -> None:
    for key, value in _ENV.items():
        clean_env.setenv(key, value)

    async def _fail(self: ThreemaGateway) -> int:
        raise SmartmailGatewayError("bad secret", status_code=401)

    clean_env.setattr(ThreemaGateway, "check_credits", _fail)

    assert cli.main(["--no-banner"]) == 2


def test_malformed_private_key_exits_2(clean_env: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    for key, value in _ENV.items():
        clean_env.setenv(key, value)
    clean_env.setenv("THREEMA_PRIVATE_KEY", "private:not-hex")

    assert cli.main(["--no-banner"]) == 2
    assert "Could not initialize Threema E2E API" in capsys.readouterr().err


def test_broker_failure_exits_3(clean_env: pytest.MonkeyPatch) -> None:
    for key, value in _ENV.items():
        clean_env.setenv(key, value)

    async def _credits(self: ThreemaGateway) -> int:
        return 100

    async def _refuse(self: Listener, settings: object) -> None:
        raise SmartmailTransportError("refused")

    clean_env.setattr(ThreemaGateway, "check_credits", _credits)
    clean_env.setattr(Listener, "start", _refuse)

    assert cli.main(["--no-banner"]) == 3


def test_banner_is_printed(clean_env: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    cli.main([])
    assert "Welcome to smartmail!" in capsys.readouterr().out
