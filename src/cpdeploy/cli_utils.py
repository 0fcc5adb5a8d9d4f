#!/usr/bin/env python3
"""Shared CLI helpers."""

from __future__ import annotations


def get_cli_version() -> str:
    from importlib.metadata import PackageNotFoundError, version as package_version

    try:
        return package_version("cpdeploy")
    except PackageNotFoundError:
        from . import __version__

        return __version__
