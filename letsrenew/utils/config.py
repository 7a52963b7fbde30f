#!/usr/bin/env python3
#
# letsrenew/utils/config.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Configuration of the certificate auto-update loop."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, ValidationError

from .time import Clock, utcnow

_log = logging.getLogger(__name__)


class ConfigValidationError(Exception):
	"""Raised when critical configuration is missing or invalid."""


# Let's Encrypt ACME endpoints
ACME_DIRECTORY_PROD = "https://acme-v02.api.letsencrypt.org/directory"
ACME_DIRECTORY_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"

DEFAULT_PADDING = timedelta(days=7)
DEFAULT_POLL_INTERVAL = 10.0

# Hostname validation pattern (RFC 1123 hostname)
_DOMAIN_PATTERN = r"^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*$"

_ALLOWED_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class Config:
	"""Everything the auto-update loop needs to know about one host.
	
	email and hostname only matter until the account is registered and the
	host is authorized; changing them afterwards has no effect. The account
	archive and the certificate bundles hold unencrypted private keys, so
	file_path and cert_path should point somewhere only the service can read.
	"""
	file_path: Path
	email: str
	hostname: str
	padding: timedelta = DEFAULT_PADDING
	cert_path: Path = Path("")
	today: Clock = utcnow
	directory_url: str = ACME_DIRECTORY_PROD
	challenge_host: str = "0.0.0.0"
	challenge_port: int = 80
	poll_interval: float = DEFAULT_POLL_INTERVAL
	max_poll_attempts: Optional[int] = None  # None = poll until the CA decides
	shutdown_timeout: float = 5.0
	log_level: str = "INFO"

	@property
	def cert_file(self) -> Path:
		"""Location of the PKCS#12 bundle for the configured host."""
		return self.cert_path / f"{self.hostname}.pfx"


class _Registration(BaseModel):
	"""Contact and host as given by the operator."""
	email: EmailStr
	hostname: str = Field(..., min_length=1, max_length=253, pattern=_DOMAIN_PATTERN)


def _contact(email: str) -> str:
	"""Contact URI for the ACME account."""
	return email if email.startswith("mailto:") else f"mailto:{email}"


def create_config(email: str, hostname: str, **overrides: Any) -> Config:
	"""Create a configuration with defaults for everything but contact and host.
	
	Args:
		email: Contact address, stored as a ``mailto:`` URI
		hostname: Host to obtain certificates for
		**overrides: Any other :class:`Config` field
	
	Raises:
		ConfigValidationError: If email or hostname are malformed
	"""
	raw_email = email[len("mailto:"):] if email.startswith("mailto:") else email
	try:
		reg = _Registration(email=raw_email, hostname=hostname)
	except ValidationError as exc:
		raise ConfigValidationError(f"Invalid registration data: {exc}") from exc

	cfg = Config(
		file_path=Path("account.zip"),
		email=_contact(str(reg.email)),
		hostname=reg.hostname.lower(),
	)
	if overrides:
		for key in ("file_path", "cert_path"):
			if key in overrides:
				overrides[key] = Path(overrides[key])
		try:
			cfg = replace(cfg, **overrides)
		except TypeError as exc:
			raise ConfigValidationError(str(exc)) from exc
	return cfg


def _parse_value(raw: str) -> str:
	"""Extract value, respecting quotes and stripping inline comments."""
	raw = raw.strip()
	if raw and raw[0] in ('"', "'"):
		quote = raw[0]
		end = raw.find(quote, 1)
		if end != -1:
			return raw[1:end]
	if " #" in raw:
		raw = raw.split(" #", 1)[0]
	return raw.strip()


def load_dotenv(dotenv_path: Path | None = None) -> None:
	"""Load simple KEY=VALUE pairs from settings.env.

	Ignores blank lines and comments, accepts ``export KEY=VALUE`` and never
	overrides variables that are already set.
	"""
	dotenv_path = dotenv_path or (Path.cwd() / "settings.env")
	if not dotenv_path.exists():
		return
	for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
		line = raw_line.strip()
		if not line or line.startswith("#") or "=" not in line:
			continue
		key, value = line.split("=", 1)
		key = key.strip()
		if key.startswith("export "):
			key = key[7:].strip()
		if not key:
			continue
		os.environ.setdefault(key, _parse_value(value))


def _env_number(name: str, default: float, cast: type = float) -> Any:
	raw = os.getenv(name, "")
	if not raw:
		return default
	try:
		value = cast(raw)
	except ValueError as exc:
		raise ConfigValidationError(f"{name} must be a number, got {raw!r}") from exc
	if value < 0:
		raise ConfigValidationError(f"{name} must be >= 0, got {raw!r}")
	return value


def load_config(dotenv_path: Path | None = None) -> Config:
	"""Load configuration from LETSRENEW_* environment variables (optionally via settings.env)."""
	load_dotenv(dotenv_path)

	email = os.getenv("LETSRENEW_EMAIL", "")
	hostname = os.getenv("LETSRENEW_HOSTNAME", "")
	if not email or not hostname:
		raise ConfigValidationError("LETSRENEW_EMAIL and LETSRENEW_HOSTNAME must be set")

	staging = os.getenv("LETSRENEW_STAGING", "").lower() in ("1", "true", "yes")
	directory_url = os.getenv(
		"LETSRENEW_DIRECTORY_URL",
		ACME_DIRECTORY_STAGING if staging else ACME_DIRECTORY_PROD,
	)

	log_level = os.getenv("LOG_LEVEL", "INFO").upper()
	if log_level not in _ALLOWED_LEVELS:
		log_level = "INFO"

	max_attempts_raw = os.getenv("LETSRENEW_MAX_POLL_ATTEMPTS", "")
	max_poll_attempts = _env_number("LETSRENEW_MAX_POLL_ATTEMPTS", 0, int) if max_attempts_raw else None

	return create_config(
		email,
		hostname,
		file_path=os.getenv("LETSRENEW_ACCOUNT_FILE", "account.zip"),
		cert_path=os.getenv("LETSRENEW_CERT_DIR", ""),
		padding=timedelta(days=_env_number("LETSRENEW_PADDING_DAYS", 7.0)),
		directory_url=directory_url,
		challenge_port=_env_number("LETSRENEW_CHALLENGE_PORT", 80, int),
		poll_interval=_env_number("LETSRENEW_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
		max_poll_attempts=max_poll_attempts,
		log_level=log_level,
	)
