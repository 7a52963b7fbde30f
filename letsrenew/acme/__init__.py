#!/usr/bin/env python3
#
# letsrenew/acme/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""ACME client, HTTP-01 responder and the flows built on them."""

from .client import ACMEClient, KeyAuthorization, jwk_thumbprint
from .errors import (
	AcmeError,
	AuthorizationFailed,
	AuthorizationTimeoutError,
	ChallengeResponderError,
	UnsupportedChallengeError,
)

__all__ = [
	"ACMEClient",
	"KeyAuthorization",
	"jwk_thumbprint",
	"AcmeError",
	"AuthorizationFailed",
	"AuthorizationTimeoutError",
	"ChallengeResponderError",
	"UnsupportedChallengeError",
]
