#!/usr/bin/env python3
#
# letsrenew/utils/files.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""File helpers for key material."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, data: bytes, mode: int = 0o600) -> None:
	"""Write data to path via temp file + rename so readers never see a partial file."""
	directory = path.parent if str(path.parent) else Path(".")
	fd, temp_path = tempfile.mkstemp(dir=str(directory), prefix=f".{path.name}.", suffix=".tmp")
	try:
		os.write(fd, data)
		os.fchmod(fd, mode)
		os.fsync(fd)
	finally:
		os.close(fd)

	try:
		# os.replace is atomic on same filesystem and cross-platform
		os.replace(temp_path, str(path))
	except Exception:
		try:
			os.unlink(temp_path)
		except OSError:
			pass
		raise
