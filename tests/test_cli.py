"""
Tests for the gateway CLI.
"""

import asyncio

import pytest
import typer
from cryptography.fernet import Fernet
from typer.testing import CliRunner

from whatsapp_gateway.auth.file_store import FileAuthStore
from whatsapp_gateway.cli.main import app, load_transport_factory
from whatsapp_gateway.config import get_settings
from whatsapp_gateway.transport.stub import stub_transport_factory

runner = CliRunner()


@pytest.fixture
def auth_dir(tmp_path, monkeypatch):
    """File credential store in a temp dir."""
    monkeypatch.setenv("WHATSAPP_AUTH_BACKEND", "file")
    monkeypatch.setenv("WHATSAPP_AUTH_DIR", str(tmp_path))
    monkeypatch.delenv("WHATSAPP_ENCRYPTION_KEY", raising=False)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


class TestCredentialCommands:
    """Tests for credential administration."""

    def test_list_empty(self, auth_dir):
        """Test listing with nothing stored."""
        result = runner.invoke(app, ["list-credentials"])

        assert result.exit_code == 0
        assert "No stored credentials" in result.output

    def test_list_and_delete(self, auth_dir):
        """Test stored sessions are listed and can be deleted."""
        asyncio.run(FileAuthStore(auth_dir).save("loja-centro", {"registered": True}))

        listed = runner.invoke(app, ["list-credentials"])
        assert listed.exit_code == 0
        assert "loja-centro" in listed.output

        deleted = runner.invoke(app, ["delete-credentials", "loja-centro", "--force"])
        assert deleted.exit_code == 0
        assert "Deleted" in deleted.output
        assert not (auth_dir / "loja-centro").exists()

    def test_delete_missing(self, auth_dir):
        """Test deleting an unknown session reports nothing stored."""
        result = runner.invoke(app, ["delete-credentials", "nope", "--force"])

        assert result.exit_code == 0
        assert "No credentials stored" in result.output


class TestGenerateKey:
    """Tests for key generation."""

    def test_generates_fernet_key(self):
        """Test the printed key is a usable Fernet key."""
        result = runner.invoke(app, ["generate-key"])

        assert result.exit_code == 0
        line = next(l for l in result.output.splitlines() if l.startswith("WHATSAPP_ENCRYPTION_KEY="))
        Fernet(line.split("=", 1)[1].encode())


class TestLoadTransportFactory:
    """Tests for resolving --transport."""

    def test_default_stub(self):
        """Test the stub factory resolves."""
        factory = load_transport_factory("whatsapp_gateway.transport.stub:stub_transport_factory")
        assert factory is stub_transport_factory

    @pytest.mark.parametrize("path", [
        "no_colon_here",
        "whatsapp_gateway.transport.stub:missing",
        "not_a_real_module_xyz:factory",
    ])
    def test_invalid_paths(self, path):
        """Test unresolvable paths are rejected."""
        with pytest.raises(typer.BadParameter):
            load_transport_factory(path)
