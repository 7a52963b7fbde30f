#!/usr/bin/env python3
#
# letsrenew/models/state.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Lifecycle states of the auto-update loop.

Each union is a set of frozen dataclasses. Consumers dispatch with
isinstance chains and raise TypeError on anything they do not know.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from ..store.account import Account
from ..utils.config import Config
from .certificate import Certificate


# ---------------------------------------------------------------------------
# Certificate state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NotRequested:
	"""No usable certificate: never issued, unreadable or about to expire."""


@dataclass(frozen=True)
class Available:
	"""A certificate for the configured host that is not yet due for renewal."""
	certificate: Certificate


CertificateState = Union[NotRequested, Available]


# ---------------------------------------------------------------------------
# Registration state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Unregistered:
	"""No account archive exists yet."""
	config: Config


@dataclass(frozen=True)
class Registered:
	"""Account registered and host authorized."""
	config: Config
	account: Account
	authorization_expires: datetime
	cert: CertificateState


LifecycleState = Union[Unregistered, Registered]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class ServerOutcome(enum.Enum):
	"""How a server callback ended."""
	STOPPED = "stopped"
	CANCELLED = "cancelled"


@dataclass(frozen=True)
class Stopped:
	"""The server stopped, by itself or because it was asked to."""


@dataclass(frozen=True)
class Failed:
	"""The loop gave up; reason is meant for the operator."""
	reason: str


CertAutoUpdateResult = Union[Stopped, Failed]
