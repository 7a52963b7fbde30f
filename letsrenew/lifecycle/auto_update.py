#!/usr/bin/env python3
#
# letsrenew/lifecycle/auto_update.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Keep a host's certificate valid while a server uses it.

The loop walks Unregistered -> Registered(NotRequested) ->
Registered(Available) and then races the caller's server against the expiry
watch. When the watch wins, the server is told to stop, a new certificate is
requested and the server is started again with it. When the server wins, the
loop ends with Stopped.

All private keys (account and certificate) are stored unencrypted; point
Config.file_path and Config.cert_path at a protected location.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

import httpx

from ..acme.errors import AcmeError, ChallengeResponderError
from ..acme.orchestrator import Orchestrator
from ..models.certificate import Certificate, CertificateFormatError
from ..models.state import (
	Available,
	CertAutoUpdateResult,
	CertificateState,
	Failed,
	LifecycleState,
	NotRequested,
	Registered,
	ServerOutcome,
	Stopped,
	Unregistered,
)
from ..store import account as account_store
from ..utils.config import Config, ConfigValidationError
from ..utils.time import renewal_due
from .expiry import wait_for_expiration

_log = logging.getLogger(__name__)

__all__ = [
	"CertAutoUpdate",
	"ServerCallback",
	"init",
	"lift",
	"start_web_server",
	"start_web_server_async",
]

# Called once per issued certificate; must return soon after cancel is set.
ServerCallback = Callable[[Certificate, asyncio.Event], Awaitable[Optional[ServerOutcome]]]

# Errors that end the loop with Failed(reason) instead of propagating
_ACME_FAILURES = (AcmeError, ChallengeResponderError, httpx.HTTPError)


# ---------------------------------------------------------------------------
# Initial state
# ---------------------------------------------------------------------------

def _setup_directories(config: Config) -> None:
	try:
		for d in (config.file_path.parent, config.cert_path):
			if d.exists() and not d.is_dir():
				raise ConfigValidationError(f"Path exists but is not a directory: {d}")
			d.mkdir(parents=True, exist_ok=True)
	except OSError as exc:
		raise ConfigValidationError(f"Cannot create directories: {exc}") from exc


def _read_cert(config: Config) -> CertificateState:
	"""Stored certificate if it is for this host and not yet due for renewal."""
	cert_file = config.cert_file
	if not cert_file.is_file():
		_log.info("LIFECYCLE no certificate at %s", cert_file)
		return NotRequested()

	try:
		cert = Certificate.load(cert_file)
	except (OSError, CertificateFormatError) as exc:
		_log.warning("LIFECYCLE ignoring unreadable certificate %s: %s", cert_file, exc)
		return NotRequested()

	if (cert.common_name or "").lower() != config.hostname.lower():
		_log.warning(
			"LIFECYCLE certificate %s is for %s, not %s",
			cert_file, cert.common_name, config.hostname,
		)
		return NotRequested()

	if renewal_due(config.today(), cert.not_after, config.padding):
		_log.info("LIFECYCLE certificate %s is expired or will expire soon", cert_file)
		return NotRequested()

	return Available(cert)


def init(config: Config) -> LifecycleState:
	"""Derive the starting state from the account archive and certificate file.
	
	Raises:
		ConfigValidationError: If the directories cannot be created
		AccountFormatError: If the account archive exists but is unreadable
	"""
	_setup_directories(config)
	if not account_store.exists(config.file_path):
		_log.info("LIFECYCLE no account at %s, registration required", config.file_path)
		return Unregistered(config)

	account, authorization_expires = account_store.load(config.file_path)
	return Registered(
		config=config,
		account=account,
		authorization_expires=authorization_expires,
		cert=_read_cert(config),
	)


# ---------------------------------------------------------------------------
# Server callback helpers
# ---------------------------------------------------------------------------

def lift(func: Callable[[Certificate, asyncio.Event], Awaitable[None]]) -> ServerCallback:
	"""Adapt a plain ``async def serve(cert, cancel)`` into a server callback.
	
	Returning normally maps to STOPPED, or CANCELLED if cancel was set.
	A CancelledError raised while cancel is set also maps to CANCELLED.
	"""
	async def callback(cert: Certificate, cancel: asyncio.Event) -> ServerOutcome:
		try:
			await func(cert, cancel)
		except asyncio.CancelledError:
			if not cancel.is_set():
				raise
			return ServerOutcome.CANCELLED
		return ServerOutcome.CANCELLED if cancel.is_set() else ServerOutcome.STOPPED

	return callback


async def _relay(stop: asyncio.Event, cancel: asyncio.Event) -> None:
	"""Forward the external stop signal to the current server."""
	await stop.wait()
	_log.info("LIFECYCLE stop requested")
	cancel.set()


async def _finish_server(server: asyncio.Task, timeout: float) -> None:
	"""Wait for a cancelled server to exit, forcing it after timeout. Result is ignored."""
	done, _ = await asyncio.wait({server}, timeout=timeout)
	if not done:
		_log.warning("LIFECYCLE server did not stop within %.1fs, forcing cancel", timeout)
		server.cancel()
	await asyncio.gather(server, return_exceptions=True)


# ---------------------------------------------------------------------------
# Lifecycle loop
# ---------------------------------------------------------------------------

class CertAutoUpdate:
	"""Lifecycle loop for one configured host."""

	def __init__(
		self,
		config: Config,
		callback: ServerCallback,
		orchestrator: Optional[Orchestrator] = None,
	) -> None:
		self.config = config
		self._callback = callback
		self._orchestrator = orchestrator or Orchestrator()

	async def run(self, stop: Optional[asyncio.Event] = None) -> CertAutoUpdateResult:
		"""Start from the persisted state and loop until stopped or failed."""
		return await self.loop(init(self.config), stop)

	async def loop(
		self,
		state: LifecycleState,
		stop: Optional[asyncio.Event] = None,
	) -> CertAutoUpdateResult:
		"""Advance state until the loop reaches Stopped or Failed."""
		while True:
			if stop is not None and stop.is_set():
				return Stopped()

			if isinstance(state, Unregistered):
				_log.info("LIFECYCLE registering account for %s", state.config.hostname)
				try:
					state = await self._orchestrator.register(state.config)
				except _ACME_FAILURES as exc:
					_log.error("LIFECYCLE registration failed: %s", exc)
					return Failed(str(exc))

			elif isinstance(state, Registered):
				cert = state.cert
				if isinstance(cert, NotRequested):
					_log.info("LIFECYCLE requesting certificate for %s", state.config.hostname)
					try:
						cert = await self._orchestrator.request_cert(state.config, state.account)
					except _ACME_FAILURES as exc:
						_log.error("LIFECYCLE certificate request failed: %s", exc)
						return Failed(str(exc))
					state = replace(state, cert=cert)

				elif isinstance(cert, Available):
					result = await self._serve(state.config, cert.certificate, stop)
					if result is not None:
						return result
					state = replace(state, cert=NotRequested())

				else:
					raise TypeError(f"Unknown certificate state: {cert!r}")

			else:
				raise TypeError(f"Unknown lifecycle state: {state!r}")

	async def _serve(
		self,
		config: Config,
		cert: Certificate,
		stop: Optional[asyncio.Event],
	) -> Optional[CertAutoUpdateResult]:
		"""Race the server against the expiry watch.
		
		Returns:
			The terminal result, or None when the certificate is due for
			renewal and the server has been shut down
		"""
		cancel = asyncio.Event()
		server = asyncio.create_task(self._callback(cert, cancel), name="letsrenew-server")
		watch = asyncio.create_task(
			wait_for_expiration(config.today, config.padding, cert),
			name="letsrenew-expiry",
		)
		relay = asyncio.create_task(_relay(stop, cancel)) if stop is not None else None
		_log.info("LIFECYCLE serving certificate %s for %s", cert.serial, config.hostname)

		try:
			done, _ = await asyncio.wait({server, watch}, return_when=asyncio.FIRST_COMPLETED)
		except asyncio.CancelledError:
			# Same grace period as a renewal before the server is forced down
			cancel.set()
			watch.cancel()
			await asyncio.shield(_finish_server(server, config.shutdown_timeout))
			await asyncio.gather(watch, return_exceptions=True)
			raise
		finally:
			if relay is not None:
				relay.cancel()
				await asyncio.gather(relay, return_exceptions=True)

		if server in done:
			watch.cancel()
			await asyncio.gather(watch, return_exceptions=True)
			outcome = server.result()
			if outcome is ServerOutcome.STOPPED or outcome is ServerOutcome.CANCELLED:
				_log.info("LIFECYCLE server %s", outcome.value)
				return Stopped()
			return Failed("Unexpected state: Neither server stopped nor cert was going to expire.")

		cancel.set()
		await _finish_server(server, config.shutdown_timeout)
		# Surface clock errors only after the server is down
		watch.result()
		_log.info("LIFECYCLE server stopped for renewal of %s", config.hostname)
		return None


async def start_web_server_async(
	config: Config,
	callback: ServerCallback,
	stop: Optional[asyncio.Event] = None,
) -> CertAutoUpdateResult:
	"""Run the lifecycle loop for config until stopped or failed."""
	return await CertAutoUpdate(config, callback).run(stop)


def start_web_server(config: Config, callback: ServerCallback) -> CertAutoUpdateResult:
	"""Blocking variant of :func:`start_web_server_async`."""
	return asyncio.run(start_web_server_async(config, callback))
