#!/usr/bin/env python3
#
# letsrenew/store/account.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Persistence of the ACME account as a single zip archive.

The archive has three members:

- ``private.pem``: account key, PKCS#8 PEM, unencrypted
- ``location.txt``: account URL
- ``expirationDate.txt``: expiry of the host authorization, ISO-8601

There is no version field; changing the layout breaks existing archives.
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from ..utils.files import atomic_write
from ..utils.time import ensure_utc, parse_utc

_log = logging.getLogger(__name__)

KEY_MEMBER = "private.pem"
LOCATION_MEMBER = "location.txt"
EXPIRATION_MEMBER = "expirationDate.txt"


class AccountFormatError(Exception):
	"""Raised when the account archive is missing, truncated or malformed."""


class UnsupportedKeyError(AccountFormatError):
	"""Raised for account keys that are neither RSA nor EC."""


@dataclass(frozen=True)
class Account:
	"""Registered ACME account: DER (PKCS#8) private key and account URL."""
	private_key_der: bytes
	location: str

	@classmethod
	def from_key(cls, key: PrivateKeyTypes, location: str) -> Account:
		_check_key_kind(key)
		der = key.private_bytes(  # type: ignore[union-attr]
			encoding=serialization.Encoding.DER,
			format=serialization.PrivateFormat.PKCS8,
			encryption_algorithm=serialization.NoEncryption(),
		)
		return cls(private_key_der=der, location=location)

	def private_key(self) -> rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey:
		"""Deserialize the account key."""
		try:
			key = serialization.load_der_private_key(self.private_key_der, password=None)
		except ValueError as exc:
			raise AccountFormatError(f"Invalid account key: {exc}") from exc
		return _check_key_kind(key)


def _check_key_kind(key: object) -> rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey:
	if isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
		return key
	raise UnsupportedKeyError(f"Unsupported account key type: {type(key).__name__}")


def exists(location: Path) -> bool:
	return location.is_file()


def save(account: Account, authorization_expires: datetime, location: Path) -> None:
	"""Write the account archive, replacing any previous one atomically.
	
	Raises:
		UnsupportedKeyError: If the account key is neither RSA nor EC
		OSError: If the target directory is not writable
	"""
	key = account.private_key()
	key_pem = key.private_bytes(
		encoding=serialization.Encoding.PEM,
		format=serialization.PrivateFormat.PKCS8,
		encryption_algorithm=serialization.NoEncryption(),
	)
	expires = ensure_utc(authorization_expires)

	buf = io.BytesIO()
	with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
		zf.writestr(KEY_MEMBER, key_pem)
		zf.writestr(LOCATION_MEMBER, account.location + "\n")
		zf.writestr(EXPIRATION_MEMBER, expires.isoformat() + "\n")

	atomic_write(location, buf.getvalue())
	_log.info("STORE saved account %s to %s", account.location, location)


def _read_member(zf: zipfile.ZipFile, name: str) -> bytes:
	try:
		return zf.read(name)
	except KeyError as exc:
		raise AccountFormatError(f"Account archive lacks {name}") from exc


def load(location: Path) -> tuple[Account, datetime]:
	"""Read the account archive.
	
	Returns:
		Tuple of (account, authorization_expires)
	
	Raises:
		AccountFormatError: If the file is absent or any member is missing or malformed
	"""
	try:
		data = location.read_bytes()
	except FileNotFoundError as exc:
		raise AccountFormatError(f"Account archive not found: {location}") from exc

	try:
		with zipfile.ZipFile(io.BytesIO(data)) as zf:
			key_pem = _read_member(zf, KEY_MEMBER)
			raw_location = _read_member(zf, LOCATION_MEMBER)
			raw_expires = _read_member(zf, EXPIRATION_MEMBER)
	except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, zlib.error, NotImplementedError) as exc:
		# damaged member data or a compression method zipfile cannot read
		raise AccountFormatError(f"Corrupt account archive {location}: {exc}") from exc

	try:
		key = serialization.load_pem_private_key(key_pem, password=None)
	except (ValueError, TypeError) as exc:
		raise AccountFormatError(f"Invalid account key in {location}: {exc}") from exc

	account_url = raw_location.decode("utf-8", errors="replace").strip()
	if not account_url:
		raise AccountFormatError(f"Empty account location in {location}")

	expires = parse_utc(raw_expires.decode("utf-8", errors="replace"))
	if expires is None:
		raise AccountFormatError(f"Invalid authorization expiration date in {location}")

	return Account.from_key(key, account_url), expires
