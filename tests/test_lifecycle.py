"""Tests for the lifecycle loop and the serve-vs-expiry race."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from letsrenew.acme.errors import AcmeError, AuthorizationFailed
from letsrenew.lifecycle.auto_update import CertAutoUpdate, lift
from letsrenew.models.state import (
	Available,
	Failed,
	NotRequested,
	Registered,
	ServerOutcome,
	Stopped,
	Unregistered,
)
from tests.helpers import (
	AUTHZ_EXPIRES,
	FakeOrchestrator,
	RecordingServer,
	make_account,
	make_certificate,
)

# Certificates relative to the fixture clock (2018-05-01, padding 7 days)
DUE = datetime(2018, 5, 5, tzinfo=timezone.utc)
FRESH = datetime(2018, 7, 30, tzinfo=timezone.utc)


def _registered(config, cert=None) -> Registered:
	return Registered(
		config=config,
		account=make_account(),
		authorization_expires=AUTHZ_EXPIRES,
		cert=Available(cert) if cert is not None else NotRequested(),
	)


def _run(coro):
	return asyncio.run(asyncio.wait_for(coro, timeout=10))


class TestTransitions:

	def test_unregistered_registers_then_issues(self, config):
		orchestrator = FakeOrchestrator(certs=[make_certificate(not_after=FRESH)])
		server = RecordingServer(["stop"])
		updater = CertAutoUpdate(config, server, orchestrator)

		assert _run(updater.loop(Unregistered(config))) == Stopped()
		assert orchestrator.register_calls == 1
		assert orchestrator.request_calls == 1
		assert len(server.served) == 1

	def test_registration_failure(self, config):
		orchestrator = FakeOrchestrator(register_error=AuthorizationFailed("invalid"))
		server = RecordingServer([])
		result = _run(CertAutoUpdate(config, server, orchestrator).loop(Unregistered(config)))

		assert isinstance(result, Failed)
		assert "invalid" in result.reason
		assert orchestrator.request_calls == 0
		assert server.served == []

	def test_issuance_failure(self, config):
		orchestrator = FakeOrchestrator(request_error=AcmeError("rate limited"))
		result = _run(CertAutoUpdate(config, RecordingServer([]), orchestrator).loop(_registered(config)))
		assert result == Failed("rate limited")

	def test_available_cert_is_served_without_issuance(self, config):
		orchestrator = FakeOrchestrator()
		cert = make_certificate(not_after=FRESH)
		server = RecordingServer(["stop"])

		assert _run(CertAutoUpdate(config, server, orchestrator).loop(_registered(config, cert))) == Stopped()
		assert orchestrator.request_calls == 0
		assert server.served == [cert]

	def test_unknown_state(self, config):
		with pytest.raises(TypeError):
			_run(CertAutoUpdate(config, RecordingServer([]), FakeOrchestrator()).loop("bogus"))

	def test_run_starts_from_disk(self, config):
		orchestrator = FakeOrchestrator(certs=[make_certificate(not_after=FRESH)])
		result = _run(CertAutoUpdate(config, RecordingServer(["stop"]), orchestrator).run())

		assert result == Stopped()
		assert orchestrator.register_calls == 1
		assert config.cert_path.is_dir()


class TestRace:

	def test_server_stop_wins_without_reissue(self, config):
		orchestrator = FakeOrchestrator(certs=[make_certificate(not_after=FRESH)])
		server = RecordingServer(["stop"])

		assert _run(CertAutoUpdate(config, server, orchestrator).loop(_registered(config))) == Stopped()
		assert orchestrator.request_calls == 1
		assert server.cancel_seen == [False]

	def test_server_cancelled_maps_to_stopped(self, config):
		async def cancelled(cert, cancel):
			return ServerOutcome.CANCELLED

		cert = make_certificate(not_after=FRESH)
		assert _run(CertAutoUpdate(config, cancelled, FakeOrchestrator()).loop(_registered(config, cert))) == Stopped()

	def test_expiry_cancels_server_and_reissues_once(self, config):
		due, fresh = make_certificate(not_after=DUE), make_certificate(not_after=FRESH)
		orchestrator = FakeOrchestrator(certs=[fresh])
		server = RecordingServer(["wait", "stop"])

		result = _run(CertAutoUpdate(config, server, orchestrator).loop(_registered(config, due)))

		assert result == Stopped()
		assert orchestrator.request_calls == 1
		assert server.served == [due, fresh]
		assert server.cancel_seen == [True, False]

	def test_stubborn_server_is_cancelled(self, config):
		config = replace(config, shutdown_timeout=0.05)
		orchestrator = FakeOrchestrator(certs=[make_certificate(not_after=FRESH)])
		server = RecordingServer(["stubborn", "stop"])

		result = _run(CertAutoUpdate(config, server, orchestrator).loop(
			_registered(config, make_certificate(not_after=DUE)),
		))
		assert result == Stopped()
		assert orchestrator.request_calls == 1
		assert len(server.served) == 2

	def test_callback_without_outcome(self, config):
		cert = make_certificate(not_after=FRESH)
		result = _run(CertAutoUpdate(config, RecordingServer([None]), FakeOrchestrator()).loop(
			_registered(config, cert),
		))
		assert isinstance(result, Failed)
		assert result.reason.startswith("Unexpected state")

	def test_server_error_propagates(self, config):
		async def broken(cert, cancel):
			raise RuntimeError("bind failed")

		cert = make_certificate(not_after=FRESH)
		with pytest.raises(RuntimeError, match="bind failed"):
			_run(CertAutoUpdate(config, broken, FakeOrchestrator()).loop(_registered(config, cert)))


class TestCancellation:

	def test_stop_event_reaches_server(self, config):
		cert = make_certificate(not_after=FRESH)
		server = RecordingServer(["wait"])

		async def scenario():
			stop = asyncio.Event()
			task = asyncio.create_task(
				CertAutoUpdate(config, server, FakeOrchestrator()).loop(_registered(config, cert), stop),
			)
			await server.started.wait()
			stop.set()
			return await task

		assert _run(scenario()) == Stopped()
		assert server.cancel_seen == [True]

	def test_stop_before_start(self, config):
		orchestrator = FakeOrchestrator()
		stop = asyncio.Event()
		stop.set()

		assert _run(CertAutoUpdate(config, RecordingServer([]), orchestrator).loop(Unregistered(config), stop)) == Stopped()
		assert orchestrator.register_calls == 0

	def test_task_cancellation_lets_server_stop(self, config):
		cert = make_certificate(not_after=FRESH)
		server = RecordingServer(["wait"])

		async def scenario():
			task = asyncio.create_task(
				CertAutoUpdate(config, server, FakeOrchestrator()).loop(_registered(config, cert)),
			)
			await server.started.wait()
			task.cancel()
			with pytest.raises(asyncio.CancelledError):
				await task

		_run(scenario())
		assert server.cancel_seen == [True]

	def test_task_cancellation_forces_stubborn_server(self, config):
		config = replace(config, shutdown_timeout=0.05)
		cert = make_certificate(not_after=FRESH)
		server = RecordingServer(["stubborn"])

		async def scenario():
			task = asyncio.create_task(
				CertAutoUpdate(config, server, FakeOrchestrator()).loop(_registered(config, cert)),
			)
			await server.started.wait()
			task.cancel()
			with pytest.raises(asyncio.CancelledError):
				await task

		_run(scenario())
		assert server.cancel_seen == []


class TestLift:

	def test_normal_return_is_stopped(self):
		async def serve(cert, cancel):
			return None

		assert asyncio.run(lift(serve)(make_certificate(), asyncio.Event())) is ServerOutcome.STOPPED

	def test_return_after_cancel_is_cancelled(self):
		async def serve(cert, cancel):
			await cancel.wait()

		async def scenario():
			cancel = asyncio.Event()
			task = asyncio.create_task(lift(serve)(make_certificate(), cancel))
			await asyncio.sleep(0)
			cancel.set()
			return await task

		assert asyncio.run(scenario()) is ServerOutcome.CANCELLED

	def test_cancelled_error_after_cancel(self):
		async def serve(cert, cancel):
			raise asyncio.CancelledError

		async def scenario():
			cancel = asyncio.Event()
			cancel.set()
			return await lift(serve)(make_certificate(), cancel)

		assert asyncio.run(scenario()) is ServerOutcome.CANCELLED

	def test_cancelled_error_without_cancel_propagates(self):
		async def serve(cert, cancel):
			raise asyncio.CancelledError

		with pytest.raises(asyncio.CancelledError):
			asyncio.run(lift(serve)(make_certificate(), asyncio.Event()))
