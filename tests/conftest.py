"""Root conftest for the LetsRenew test suite."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

import pytest

from letsrenew.utils.config import Config, create_config
from tests.helpers import HOSTNAME, fixed_clock


@pytest.fixture()
def config(tmp_path: Path) -> Config:
	"""Configuration rooted in tmp_path with the clock fixed at 2018-05-01."""
	return create_config(
		"admin@example.com",
		HOSTNAME,
		file_path=tmp_path / "account" / "account.zip",
		cert_path=tmp_path / "certs",
		today=fixed_clock(2018, 5, 1),
		padding=timedelta(days=7),
		poll_interval=0,
		shutdown_timeout=0.5,
	)


@pytest.fixture(autouse=True)
def _private_environ(monkeypatch):
	"""Give every test its own environment without LETSRENEW_* variables."""
	monkeypatch.setattr(
		os,
		"environ",
		{k: v for k, v in os.environ.items() if not k.startswith("LETSRENEW_")},
	)
	yield
