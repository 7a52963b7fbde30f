#!/usr/bin/env python3
#
# letsrenew/acme/challenge.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Short-lived HTTP server answering one ACME HTTP-01 challenge."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .errors import ChallengeResponderError

_log = logging.getLogger(__name__)

# Seconds to wait for uvicorn to shut down before the serve task is cancelled
_STOP_TIMEOUT = 5.0


def build_challenge_app(path: str, content: str) -> FastAPI:
	"""FastAPI app that serves content at path and 404 everywhere else."""
	app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

	@app.get(path, response_class=PlainTextResponse)
	async def serve_challenge() -> str:
		_log.info("CHALLENGE answered %s", path)
		return content

	return app


class ChallengeResponder:
	"""Serve a key authorization at ``path`` until stopped.

	Usage::

		async with ChallengeResponder(path, content, port=80):
			await client.complete_challenge(url)
	"""

	def __init__(
		self,
		path: str,
		content: str,
		host: str = "0.0.0.0",
		port: int = 80,
	) -> None:
		self.path = path
		self.content = content
		self.host = host
		self.port = port
		self._server: Optional[uvicorn.Server] = None
		self._task: Optional[asyncio.Task] = None

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	async def _serve(self, server: uvicorn.Server) -> None:
		try:
			await server.serve()
		except SystemExit as exc:
			# uvicorn exits the process when it cannot bind
			raise ChallengeResponderError(
				f"Cannot listen on {self.host}:{self.port} for HTTP-01 challenge"
			) from exc

	async def start(self) -> None:
		"""Start listening; returns once the socket is bound."""
		if self.running:
			return

		config = uvicorn.Config(
			build_challenge_app(self.path, self.content),
			host=self.host,
			port=self.port,
			lifespan="off",
			log_config=None,
			access_log=False,
		)
		server = uvicorn.Server(config)
		task = asyncio.create_task(self._serve(server))
		self._server, self._task = server, task

		while not server.started:
			if task.done():
				self._server = self._task = None
				exc = task.exception()
				if exc is not None:
					raise exc
				raise ChallengeResponderError("HTTP-01 responder exited during startup")
			await asyncio.sleep(0.05)
		_log.info("CHALLENGE responder listening on %s:%d%s", self.host, self.port, self.path)

	async def stop(self) -> None:
		"""Ask uvicorn to exit and wait for it; cancel if it does not comply in time."""
		server, task = self._server, self._task
		self._server = self._task = None
		if server is None or task is None:
			return

		server.should_exit = True
		done, _ = await asyncio.wait({task}, timeout=_STOP_TIMEOUT)
		if not done:
			_log.warning("CHALLENGE responder did not stop gracefully, forcing cancel")
			task.cancel()
		await asyncio.gather(task, return_exceptions=True)
		_log.info("CHALLENGE responder stopped")

	async def __aenter__(self) -> ChallengeResponder:
		await self.start()
		return self

	async def __aexit__(self, *args: Any) -> None:
		await self.stop()
