#!/usr/bin/env python3
#
# letsrenew/lifecycle/expiry.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Wait until a certificate is due for renewal."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from ..models.certificate import Certificate
from ..utils.time import Clock, renewal_deadline, renewal_due

_log = logging.getLogger(__name__)

CHECK_INTERVAL = timedelta(days=1)


async def wait_for_expiration(
	now: Clock,
	padding: timedelta,
	cert: Certificate,
	interval: timedelta = CHECK_INTERVAL,
) -> None:
	"""Return once ``now()`` reaches ``cert.not_after - padding``.
	
	The condition is checked before every sleep, so a certificate that is
	already due returns immediately. Cancel the awaiting task to stop waiting.
	"""
	deadline = renewal_deadline(cert.not_after, padding)
	_log.info("LIFECYCLE certificate %s due for renewal at %s", cert.serial, deadline.isoformat())
	while not renewal_due(now(), cert.not_after, padding):
		await asyncio.sleep(interval.total_seconds())
	_log.info("LIFECYCLE certificate %s is due for renewal", cert.serial)
