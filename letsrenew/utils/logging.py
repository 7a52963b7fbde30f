#!/usr/bin/env python3
#
# letsrenew/utils/logging.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Unified log output for the renewal loop and the servers it starts."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# ANSI color codes for log levels (if TTY)
_LOG_COLORS = {
	"DEBUG": "\033[36m",    # Cyan
	"INFO": "\033[32m",     # Green
	"WARNING": "\033[33m",  # Yellow
	"ERROR": "\033[31m",    # Red
	"CRITICAL": "\033[35m", # Magenta
}
_RESET = "\033[0m"


class ColoredFormatter(logging.Formatter):
	"""Formatter that adds color to log levels in TTY."""
	
	def format(self, record: logging.LogRecord) -> str:
		orig_levelname = record.levelname
		if orig_levelname in _LOG_COLORS:
			record.levelname = f"{_LOG_COLORS[orig_levelname]}{orig_levelname:<8}{_RESET}"
		else:
			record.levelname = f"{orig_levelname:<8}"
		try:
			return super().format(record)
		finally:
			record.levelname = orig_levelname


def setup_logging(log_level: str = "INFO") -> None:
	"""Configure root logging; uvicorn loggers inherit the same handler."""
	level = getattr(logging, log_level.upper(), logging.INFO)

	if sys.stdout.isatty():
		formatter: logging.Formatter = ColoredFormatter(
			fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
			datefmt=DATE_FORMAT,
		)
	else:
		formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

	# force=True removes any pre-existing handlers (e.g. from uvicorn)
	logging.basicConfig(
		level=level,
		handlers=[logging.StreamHandler(sys.stdout)],
		force=True,
	)
	for handler in logging.root.handlers:
		handler.setFormatter(formatter)

	for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
		logger = logging.getLogger(name)
		logger.handlers.clear()
		logger.setLevel(level)
		logger.propagate = True

	# Quiet down noisy third-party libraries
	for name in ("httpcore", "httpx"):
		logging.getLogger(name).setLevel(logging.WARNING)
