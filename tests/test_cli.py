"""
Tests for the developer CLI.
"""

from typer.testing import CliRunner

from cli import app
from shared.security.auth import JWTTokenVerifier

runner = CliRunner()


class TestTokenCommand:

    def test_signs_verifiable_token(self):
        result = runner.invoke(app, ["token", "u42"])

        assert result.exit_code == 0
        assert JWTTokenVerifier().verify(result.output.strip()) == "u42"


class TestVersionCommand:

    def test_lists_package_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "fintrack-realtime" in result.output
