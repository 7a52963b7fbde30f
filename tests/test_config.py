"""Tests for configuration creation and environment loading."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from letsrenew.utils.config import (
	ACME_DIRECTORY_PROD,
	ACME_DIRECTORY_STAGING,
	ConfigValidationError,
	create_config,
	load_config,
	load_dotenv,
)
from letsrenew.utils.time import utcnow


class TestCreateConfig:

	def test_defaults(self):
		cfg = create_config("mail@example.com", "example.com")
		assert cfg.email == "mailto:mail@example.com"
		assert cfg.hostname == "example.com"
		assert cfg.file_path == Path("account.zip")
		assert cfg.cert_path == Path("")
		assert cfg.padding == timedelta(days=7)
		assert cfg.today is utcnow
		assert cfg.directory_url == ACME_DIRECTORY_PROD
		assert cfg.challenge_port == 80
		assert cfg.poll_interval == 10.0
		assert cfg.max_poll_attempts is None

	def test_mailto_not_doubled(self):
		cfg = create_config("mailto:mail@example.com", "example.com")
		assert cfg.email == "mailto:mail@example.com"

	def test_overrides_and_cert_file(self, tmp_path):
		cfg = create_config(
			"mail@example.com",
			"Example.COM",
			cert_path=str(tmp_path),
			padding=timedelta(days=10),
		)
		assert cfg.hostname == "example.com"
		assert cfg.padding == timedelta(days=10)
		assert cfg.cert_file == tmp_path / "example.com.pfx"

	@pytest.mark.parametrize(
		"email,hostname",
		[("not-an-email", "example.com"), ("mail@example.com", "bad host"), ("mail@example.com", "")],
	)
	def test_invalid_registration_data(self, email, hostname):
		with pytest.raises(ConfigValidationError):
			create_config(email, hostname)

	def test_unknown_override(self):
		with pytest.raises(ConfigValidationError):
			create_config("mail@example.com", "example.com", colour="blue")


class TestLoadConfig:

	def test_requires_email_and_hostname(self, tmp_path):
		with pytest.raises(ConfigValidationError, match="LETSRENEW_EMAIL"):
			load_config(tmp_path / "missing.env")

	def test_from_environment(self, monkeypatch, tmp_path):
		monkeypatch.setenv("LETSRENEW_EMAIL", "ops@example.org")
		monkeypatch.setenv("LETSRENEW_HOSTNAME", "www.example.org")
		monkeypatch.setenv("LETSRENEW_STAGING", "true")
		monkeypatch.setenv("LETSRENEW_PADDING_DAYS", "14")
		monkeypatch.setenv("LETSRENEW_CERT_DIR", str(tmp_path))
		monkeypatch.setenv("LETSRENEW_MAX_POLL_ATTEMPTS", "30")

		cfg = load_config(tmp_path / "missing.env")
		assert cfg.email == "mailto:ops@example.org"
		assert cfg.directory_url == ACME_DIRECTORY_STAGING
		assert cfg.padding == timedelta(days=14)
		assert cfg.cert_path == tmp_path
		assert cfg.max_poll_attempts == 30

	def test_rejects_non_numeric(self, monkeypatch, tmp_path):
		monkeypatch.setenv("LETSRENEW_EMAIL", "ops@example.org")
		monkeypatch.setenv("LETSRENEW_HOSTNAME", "www.example.org")
		monkeypatch.setenv("LETSRENEW_CHALLENGE_PORT", "eighty")
		with pytest.raises(ConfigValidationError, match="LETSRENEW_CHALLENGE_PORT"):
			load_config(tmp_path / "missing.env")

	def test_dotenv_does_not_override(self, monkeypatch, tmp_path):
		env = tmp_path / "settings.env"
		env.write_text(
			"# comment\n"
			"export LETSRENEW_EMAIL=ops@example.org\n"
			"LETSRENEW_HOSTNAME=\"www.example.org\" # inline\n",
			encoding="utf-8",
		)
		monkeypatch.setenv("LETSRENEW_EMAIL", "first@example.org")
		load_dotenv(env)

		import os

		assert os.environ["LETSRENEW_EMAIL"] == "first@example.org"
		assert os.environ["LETSRENEW_HOSTNAME"] == "www.example.org"
