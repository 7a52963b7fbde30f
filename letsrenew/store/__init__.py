#!/usr/bin/env python3
#
# letsrenew/store/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Durable state of the lifecycle loop."""
