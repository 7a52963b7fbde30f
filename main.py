#!/usr/bin/env python3
#
# main.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

# LetsRenew - automatic Let's Encrypt certificates
# Demo entry point: serves "Hello World" over HTTPS and keeps the cert fresh.
#
#   python main.py          run the renewal loop with the demo app
#   python main.py status   print what is stored on disk
#

import asyncio
import logging
import signal
import sys

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from letsrenew import ConfigValidationError, Failed, load_config
from letsrenew.lifecycle import CertAutoUpdate
from letsrenew.models.status import inspect_state
from letsrenew.server import uvicorn_server
from letsrenew.utils.logging import setup_logging

_log = logging.getLogger("letsrenew.main")


def _demo_app() -> FastAPI:
	app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

	@app.get("/", response_class=PlainTextResponse)
	async def hello() -> str:
		return "Hello World with cert"

	return app


async def _run(cfg) -> int:
	stop = asyncio.Event()
	loop = asyncio.get_running_loop()
	for sig in (signal.SIGINT, signal.SIGTERM):
		loop.add_signal_handler(sig, stop.set)

	callback = uvicorn_server(_demo_app(), cert_dir=cfg.cert_path / "pem")
	_log.info("Starting cert auto update for %s", cfg.hostname)
	result = await CertAutoUpdate(cfg, callback).run(stop)
	_log.info("Cert auto update result: %s", result)
	return 1 if isinstance(result, Failed) else 0


if __name__ == "__main__":
	try:
		cfg = load_config()
	except ConfigValidationError as exc:
		print(f"Configuration error: {exc}", file=sys.stderr)
		sys.exit(2)

	setup_logging(cfg.log_level)

	if sys.argv[1:] == ["status"]:
		print(inspect_state(cfg).model_dump_json(indent=2))
		sys.exit(0)

	sys.exit(asyncio.run(_run(cfg)))
