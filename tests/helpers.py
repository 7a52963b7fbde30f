"""Shared builders for the test suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from letsrenew.models.certificate import Certificate
from letsrenew.models.state import Available, NotRequested, Registered, ServerOutcome
from letsrenew.store.account import Account

UTC = timezone.utc
HOSTNAME = "example.com"

# notAfter of the reference certificate used by the expiry scenarios
NOT_AFTER_2018 = datetime(2018, 5, 31, 12, 0, tzinfo=UTC)
AUTHZ_EXPIRES = datetime(2018, 6, 20, 8, 30, tzinfo=UTC)


def fixed_clock(*args: int):
	"""Clock that always returns the given UTC date."""
	moment = datetime(*args, tzinfo=UTC)
	return lambda: moment


def make_certificate(
	hostname: str = HOSTNAME,
	not_after: datetime = NOT_AFTER_2018,
	not_before: Optional[datetime] = None,
) -> Certificate:
	"""Self-signed certificate for hostname."""
	key = ec.generate_private_key(ec.SECP256R1())
	name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)])
	cert = (
		x509.CertificateBuilder()
		.subject_name(name)
		.issuer_name(name)
		.public_key(key.public_key())
		.serial_number(x509.random_serial_number())
		.not_valid_before(not_before or not_after - timedelta(days=90))
		.not_valid_after(not_after)
		.sign(key, hashes.SHA256())
	)
	return Certificate(certificate=cert, private_key=key)


def make_account(location: str = "https://acme.test/acct/1") -> Account:
	return Account.from_key(ec.generate_private_key(ec.SECP256R1()), location)


class FakeOrchestrator:
	"""Scripted stand-in for the ACME flows."""

	def __init__(
		self,
		certs: Optional[list[Certificate]] = None,
		register_error: Optional[Exception] = None,
		request_error: Optional[Exception] = None,
	) -> None:
		self.certs = list(certs or [])
		self.register_error = register_error
		self.request_error = request_error
		self.account = make_account()
		self.register_calls = 0
		self.request_calls = 0

	async def register(self, config):
		self.register_calls += 1
		if self.register_error is not None:
			raise self.register_error
		return Registered(
			config=config,
			account=self.account,
			authorization_expires=AUTHZ_EXPIRES,
			cert=NotRequested(),
		)

	async def request_cert(self, config, account):
		self.request_calls += 1
		if self.request_error is not None:
			raise self.request_error
		return Available(self.certs.pop(0))


class RecordingServer:
	"""Server callback that records every certificate it was started with.

	``outcomes`` is consumed one entry per start: ``"stop"`` returns STOPPED
	at once, ``"wait"`` runs until cancelled and returns CANCELLED,
	``"stubborn"`` ignores the cancel event, ``None`` returns None.
	"""

	def __init__(self, outcomes: list[Optional[str]]) -> None:
		self.outcomes = list(outcomes)
		self.served: list[Certificate] = []
		self.cancel_seen: list[bool] = []
		self.started = asyncio.Event()

	async def __call__(self, cert: Certificate, cancel: asyncio.Event):
		self.served.append(cert)
		self.started.set()
		behaviour = self.outcomes.pop(0)
		if behaviour == "stop":
			self.cancel_seen.append(cancel.is_set())
			return ServerOutcome.STOPPED
		if behaviour == "wait":
			await cancel.wait()
			self.cancel_seen.append(True)
			return ServerOutcome.CANCELLED
		if behaviour == "stubborn":
			await asyncio.sleep(3600)
		return None
