#!/usr/bin/env python3
#
# letsrenew/models/certificate.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Issued certificate handle and its on-disk PKCS#12 bundle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from ..utils.files import atomic_write

_log = logging.getLogger(__name__)


class CertificateFormatError(Exception):
	"""Raised when a certificate bundle cannot be parsed."""


@dataclass(frozen=True)
class Certificate:
	"""Leaf certificate, its private key and the intermediates that came with it."""
	certificate: x509.Certificate
	private_key: PrivateKeyTypes
	chain: tuple[x509.Certificate, ...] = ()

	@property
	def not_after(self) -> datetime:
		return self.certificate.not_valid_after_utc

	@property
	def not_before(self) -> datetime:
		return self.certificate.not_valid_before_utc

	@property
	def common_name(self) -> str | None:
		attrs = self.certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
		if not attrs:
			return None
		value = attrs[0].value
		return value if isinstance(value, str) else value.decode("utf-8")

	@property
	def serial(self) -> str:
		return format(self.certificate.serial_number, "x")

	@classmethod
	def from_pem(cls, chain_pem: bytes, private_key: PrivateKeyTypes) -> Certificate:
		"""Build a handle from a PEM chain as returned by the CA (leaf first)."""
		try:
			certs = x509.load_pem_x509_certificates(chain_pem)
		except ValueError as exc:
			raise CertificateFormatError(f"Invalid PEM certificate chain: {exc}") from exc
		return cls(certificate=certs[0], private_key=private_key, chain=tuple(certs[1:]))

	@classmethod
	def from_pfx(cls, data: bytes) -> Certificate:
		"""Parse a password-less PKCS#12 bundle."""
		try:
			bundle = pkcs12.load_pkcs12(data, None)
		except ValueError as exc:
			raise CertificateFormatError(f"Invalid PKCS#12 bundle: {exc}") from exc
		if bundle.cert is None or bundle.key is None:
			raise CertificateFormatError("PKCS#12 bundle lacks certificate or private key")
		return cls(
			certificate=bundle.cert.certificate,
			private_key=bundle.key,
			chain=tuple(c.certificate for c in bundle.additional_certs),
		)

	def to_pfx(self, friendly_name: str) -> bytes:
		"""Serialize as a PKCS#12 bundle without password."""
		return pkcs12.serialize_key_and_certificates(
			friendly_name.encode("utf-8"),
			self.private_key,  # type: ignore[arg-type]
			self.certificate,
			list(self.chain) or None,
			serialization.NoEncryption(),
		)

	@classmethod
	def load(cls, path: Path) -> Certificate:
		"""Read a bundle previously written by :meth:`save`."""
		return cls.from_pfx(path.read_bytes())

	def save(self, path: Path, friendly_name: str) -> None:
		atomic_write(path, self.to_pfx(friendly_name))
		_log.info("Saved certificate for %s to %s", friendly_name, path)

	def write_pem(self, directory: Path) -> tuple[Path, Path]:
		"""Write fullchain and private key PEM files for servers that want paths.
		
		Returns:
			Tuple of (fullchain_path, key_path)
		"""
		name = self.common_name or self.serial
		directory.mkdir(parents=True, exist_ok=True)
		fullchain_path = directory / f"{name}.fullchain.pem"
		key_path = directory / f"{name}.privkey.pem"

		fullchain = b"".join(
			c.public_bytes(serialization.Encoding.PEM)
			for c in (self.certificate, *self.chain)
		)
		key_pem = self.private_key.private_bytes(  # type: ignore[union-attr]
			encoding=serialization.Encoding.PEM,
			format=serialization.PrivateFormat.PKCS8,
			encryption_algorithm=serialization.NoEncryption(),
		)
		atomic_write(fullchain_path, fullchain, mode=0o644)
		atomic_write(key_path, key_pem, mode=0o600)
		return fullchain_path, key_path
