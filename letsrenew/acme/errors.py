#!/usr/bin/env python3
#
# letsrenew/acme/errors.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Errors raised while talking to the ACME server."""

from __future__ import annotations

from typing import Optional


class AcmeError(Exception):
	"""ACME request rejected or answered with something unusable."""

	def __init__(
		self,
		message: str,
		*,
		status_code: Optional[int] = None,
		error_type: Optional[str] = None,
	) -> None:
		super().__init__(message)
		self.status_code = status_code
		self.error_type = error_type


class UnsupportedChallengeError(AcmeError):
	"""The server offered no HTTP-01 challenge for the host."""


class AuthorizationFailed(AcmeError):
	"""Authorization ended in a status other than ``valid``."""

	def __init__(self, status: str, detail: str = "") -> None:
		message = f"Authorization failed with status {status!r}"
		if detail:
			message = f"{message}: {detail}"
		super().__init__(message)
		self.status = status


class AuthorizationTimeoutError(AcmeError):
	"""Authorization still pending after the configured number of polls."""


class ChallengeResponderError(Exception):
	"""The HTTP-01 responder could not be started."""
