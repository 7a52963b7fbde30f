#!/usr/bin/env python3
#
# letsrenew/models/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Data types of the certificate lifecycle."""

from .certificate import Certificate, CertificateFormatError
from .state import (
	Available,
	CertAutoUpdateResult,
	CertificateState,
	Failed,
	LifecycleState,
	NotRequested,
	Registered,
	ServerOutcome,
	Stopped,
	Unregistered,
)

__all__ = [
	# Certificate
	"Certificate",
	"CertificateFormatError",
	# State
	"Available",
	"CertificateState",
	"LifecycleState",
	"NotRequested",
	"Registered",
	"Unregistered",
	# Outcomes
	"CertAutoUpdateResult",
	"Failed",
	"ServerOutcome",
	"Stopped",
]
