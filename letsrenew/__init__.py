#!/usr/bin/env python3
#
# letsrenew/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""LetsRenew - automatic Let's Encrypt certificates for asyncio servers."""

from .lifecycle import (
	CertAutoUpdate,
	init,
	lift,
	start_web_server,
	start_web_server_async,
	wait_for_expiration,
)
from .models import Failed, ServerOutcome, Stopped
from .utils.config import Config, ConfigValidationError, create_config, load_config

__all__ = [
	"CertAutoUpdate",
	"Config",
	"ConfigValidationError",
	"Failed",
	"ServerOutcome",
	"Stopped",
	"create_config",
	"init",
	"lift",
	"load_config",
	"start_web_server",
	"start_web_server_async",
	"wait_for_expiration",
]
