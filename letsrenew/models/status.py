#!/usr/bin/env python3
#
# letsrenew/models/status.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Read-only report of the persisted lifecycle state."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel

from ..store import account as account_store
from ..utils.config import Config
from ..utils.time import ensure_utc, renewal_due
from .certificate import Certificate, CertificateFormatError

_log = logging.getLogger(__name__)


class CertificateStatus(BaseModel):
	"""What is on disk for one host."""
	hostname: str
	registered: bool = False
	account_location: Optional[str] = None
	authorization_expires_at: Optional[str] = None
	authorization_expired: bool = False
	certificate_exists: bool = False
	issuer: Optional[str] = None
	serial: Optional[str] = None
	issued_at: Optional[str] = None
	expires_at: Optional[str] = None
	days_until_expiry: Optional[int] = None
	renewal_due: bool = True


def inspect_state(config: Config) -> CertificateStatus:
	"""Summarize account archive and certificate without touching the CA.
	
	Raises:
		AccountFormatError: If the account archive exists but is unreadable
	"""
	now = ensure_utc(config.today())
	status = CertificateStatus(hostname=config.hostname)

	if account_store.exists(config.file_path):
		account, expires = account_store.load(config.file_path)
		status.registered = True
		status.account_location = account.location
		status.authorization_expires_at = expires.isoformat()
		status.authorization_expired = now >= expires

	cert_file = config.cert_file
	if not cert_file.is_file():
		return status

	try:
		cert = Certificate.load(cert_file)
	except (OSError, CertificateFormatError) as exc:
		_log.warning("Failed to parse certificate %s: %s", cert_file, exc)
		return status

	issuer = cert.certificate.issuer.rfc4514_string()
	status.certificate_exists = True
	status.issuer = issuer or "Unknown"
	status.serial = cert.serial
	status.issued_at = cert.not_before.isoformat()
	status.expires_at = cert.not_after.isoformat()
	status.days_until_expiry = (cert.not_after - now).days
	status.renewal_due = renewal_due(now, cert.not_after, config.padding)
	return status
