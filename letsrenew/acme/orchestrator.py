#!/usr/bin/env python3
#
# letsrenew/acme/orchestrator.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Registration, host authorization and certificate issuance flows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from ..models.certificate import Certificate, CertificateFormatError
from ..models.state import Available, NotRequested, Registered
from ..store import account as account_store
from ..store.account import Account
from ..utils.config import Config
from ..utils.time import parse_utc
from .challenge import ChallengeResponder
from .client import ACMEClient
from .errors import AcmeError, AuthorizationFailed, AuthorizationTimeoutError

_log = logging.getLogger(__name__)

ClientFactory = Callable[..., ACMEClient]
ResponderFactory = Callable[..., ChallengeResponder]


class Orchestrator:
	"""Drives the ACME client through the steps the lifecycle loop needs.

	Every step raises :class:`AcmeError` (or a subclass) when the CA says no;
	nothing is retried here.
	"""

	def __init__(
		self,
		client_factory: ClientFactory = ACMEClient,
		responder_factory: ResponderFactory = ChallengeResponder,
	) -> None:
		self._client_factory = client_factory
		self._responder_factory = responder_factory

	def _client(self, config: Config, account: Account | None = None) -> ACMEClient:
		if account is None:
			return self._client_factory(config.directory_url)
		return self._client_factory(
			config.directory_url,
			account_key=account.private_key(),
			account_url=account.location,
		)

	async def register(self, config: Config) -> Registered:
		"""Create the ACME account and authorize the host.
		
		The account archive is only written when the host authorization
		succeeded, so a failed attempt leaves no trace on disk.
		"""
		async with self._client(config) as client:
			account_url = await client.new_account(config.email)
			tos = await client.terms_of_service()
			_log.info("ACME accepting terms of service %s", tos or "(none announced)")
			await client.update_account(contact=[config.email], termsOfServiceAgreed=True)
			account = Account.from_key(client.account_key, account_url)

		expires = await self.authorize_host(config, account)
		account_store.save(account, expires, config.file_path)
		return Registered(
			config=config,
			account=account,
			authorization_expires=expires,
			cert=NotRequested(),
		)

	async def _wait_for_authorization(
		self,
		client: ACMEClient,
		authz_url: str,
		config: Config,
	) -> dict:
		"""Poll the authorization while it is pending."""
		attempts = 0
		while True:
			authorization = await client.get_authorization(authz_url)
			if authorization.get("status") != "pending":
				return authorization
			attempts += 1
			if config.max_poll_attempts is not None and attempts >= config.max_poll_attempts:
				raise AuthorizationTimeoutError(
					f"Authorization for {config.hostname} still pending after {attempts} polls"
				)
			_log.debug("ACME authorization for %s pending, polling again in %.0fs", config.hostname, config.poll_interval)
			await asyncio.sleep(config.poll_interval)

	async def authorize_host(self, config: Config, account: Account) -> datetime:
		"""Prove control of the host via HTTP-01.
		
		Returns:
			Expiry of the authorization
		
		Raises:
			UnsupportedChallengeError: If the CA offers no HTTP-01 challenge
			AuthorizationFailed: If the authorization ends in any status but valid
			AuthorizationTimeoutError: If max_poll_attempts is set and exceeded
		"""
		async with self._client(config, account) as client:
			authz_url, authorization = await client.new_authorization(config.hostname)
			if authorization.get("status") != "valid":
				challenge = client.http01_challenge(authorization)
				key_auth = client.key_authorization(challenge["token"])

				responder = self._responder_factory(
					key_auth.path,
					key_auth.text,
					host=config.challenge_host,
					port=config.challenge_port,
				)
				await responder.start()
				try:
					await client.complete_challenge(challenge["url"])
					authorization = await self._wait_for_authorization(client, authz_url, config)
				finally:
					await responder.stop()

		status = authorization.get("status", "unknown")
		if status != "valid":
			detail = ""
			for challenge in authorization.get("challenges", []):
				if challenge.get("error"):
					detail = challenge["error"].get("detail", "")
					break
			raise AuthorizationFailed(status, detail)

		expires = parse_utc(authorization.get("expires", ""))
		if expires is None:
			raise AcmeError(f"Authorization for {config.hostname} has no valid expiry")
		_log.info("ACME host %s authorized until %s", config.hostname, expires.isoformat())
		return expires

	async def request_cert(self, config: Config, account: Account) -> Available:
		"""Issue a certificate and store it as {cert_path}/{hostname}.pfx."""
		async with self._client(config, account) as client:
			chain_pem, domain_key = await client.new_certificate(config.hostname)

		try:
			cert = Certificate.from_pem(chain_pem, domain_key)
		except CertificateFormatError as exc:
			raise AcmeError(f"CA returned an unusable certificate: {exc}") from exc
		if (cert.common_name or "").lower() != config.hostname.lower():
			raise AcmeError(f"Issued certificate is for {cert.common_name!r}, expected {config.hostname!r}")

		cert.save(config.cert_file, config.hostname)
		_log.info(
			"ACME certificate for %s valid until %s",
			config.hostname, cert.not_after.isoformat(),
		)
		return Available(cert)
