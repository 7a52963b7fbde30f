#!/usr/bin/env python3
#
# letsrenew/server.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""HTTPS server callback running an ASGI app with uvicorn."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import uvicorn

from .lifecycle.auto_update import ServerCallback
from .models.certificate import Certificate
from .models.state import ServerOutcome

_log = logging.getLogger(__name__)


class ServerStartError(OSError):
	"""uvicorn could not bind its socket."""


async def _serve(server: uvicorn.Server) -> None:
	try:
		await server.serve()
	except SystemExit as exc:
		# uvicorn exits the process when it cannot bind
		config = server.config
		raise ServerStartError(f"Cannot listen on {config.host}:{config.port}") from exc


def uvicorn_server(
	app: Any,
	cert_dir: Path,
	host: str = "0.0.0.0",
	port: int = 443,
	**uvicorn_kwargs: Any,
) -> ServerCallback:
	"""Build a server callback that serves ``app`` over HTTPS with each new certificate.
	
	Args:
		app: ASGI application (or import string) handed to uvicorn
		cert_dir: Where the PEM copies of certificate and key are written
		host: Bind address
		port: Bind port
		**uvicorn_kwargs: Extra :class:`uvicorn.Config` options
	"""
	async def callback(cert: Certificate, cancel: asyncio.Event) -> ServerOutcome:
		certfile, keyfile = await asyncio.to_thread(cert.write_pem, cert_dir)
		config = uvicorn.Config(
			app,
			host=host,
			port=port,
			ssl_certfile=str(certfile),
			ssl_keyfile=str(keyfile),
			log_config=None,
			**uvicorn_kwargs,
		)
		server = uvicorn.Server(config)
		serving = asyncio.create_task(_serve(server))
		cancelled = asyncio.create_task(cancel.wait())
		_log.info("Starting HTTPS server on %s:%d", host, port)

		try:
			done, _ = await asyncio.wait({serving, cancelled}, return_when=asyncio.FIRST_COMPLETED)
			if serving in done:
				serving.result()
				return ServerOutcome.CANCELLED if cancel.is_set() else ServerOutcome.STOPPED

			server.should_exit = True
			await serving
			return ServerOutcome.CANCELLED
		finally:
			cancelled.cancel()
			if not serving.done():
				server.should_exit = True
				serving.cancel()
			await asyncio.gather(serving, cancelled, return_exceptions=True)

	return callback
