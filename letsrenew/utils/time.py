#!/usr/bin/env python3
#
# letsrenew/utils/time.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Timezone-aware clock helpers used by the renewal logic."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
	"""Return the current UTC time as a timezone-aware datetime."""
	return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
	"""Convert an aware datetime to UTC.
	
	Raises:
		ValueError: If the datetime is naive (no timezone info)
	"""
	if dt.tzinfo is None:
		raise ValueError("Naive datetime not allowed - must be timezone-aware")
	return dt.astimezone(timezone.utc)


def parse_utc(s: str) -> Optional[datetime]:
	"""Parse an ISO-8601 timestamp string to a UTC datetime.
	
	Handles both 'Z' suffix and '+00:00' offset notation.
	Returns None for invalid/unparseable or naive (timezone-less) timestamps.
	"""
	s = (s or "").strip()
	if not s:
		return None
	try:
		if s.endswith("Z"):
			s = s[:-1] + "+00:00"
		dt = datetime.fromisoformat(s)
	except (ValueError, TypeError):
		return None
	if dt.tzinfo is None:
		return None
	return dt.astimezone(timezone.utc)


def renewal_deadline(not_after: datetime, padding: timedelta) -> datetime:
	"""Point in time from which a certificate counts as due for renewal."""
	return ensure_utc(not_after) - padding


def renewal_due(now: datetime, not_after: datetime, padding: timedelta) -> bool:
	"""True once ``now`` has reached ``not_after - padding``."""
	return ensure_utc(now) >= renewal_deadline(not_after, padding)
