#!/usr/bin/env python3
#
# letsrenew/lifecycle/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Certificate lifecycle loop and expiry watch."""

from .auto_update import (
	CertAutoUpdate,
	ServerCallback,
	init,
	lift,
	start_web_server,
	start_web_server_async,
)
from .expiry import wait_for_expiration

__all__ = [
	"CertAutoUpdate",
	"ServerCallback",
	"init",
	"lift",
	"start_web_server",
	"start_web_server_async",
	"wait_for_expiration",
]
