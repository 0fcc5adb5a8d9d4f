"""cpdeploy package."""

from __future__ import annotations

import os


def _build_version() -> str:
	override = os.getenv("CPDEPLOY_BUILD_VERSION")
	if override:
		return override
	return "1.0.0"


__version__ = _build_version()
