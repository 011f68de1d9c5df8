# Copyright (c) 2024 Stagehand Contributors
# MIT License

"""Stagehand release metadata."""

from __future__ import annotations

__version__ = "0.1.0"
__author__ = "Stagehand Contributors"
__codename__ = "Curtain"

# Version info tuple for programmatic comparison
VERSION_INFO = (0, 1, 0)
