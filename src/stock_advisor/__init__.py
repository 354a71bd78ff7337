"""Multi-factor stock recommendation engine."""

import os


def get_server_version() -> str:
    """Get version with fallback for dev mode."""
    if version := os.environ.get("SERVER_VERSION"):
        return version
    try:
        from importlib.metadata import version as pkg_version

        return pkg_version("stock-advisor")
    except Exception:
        return "dev"


SERVER_VERSION = get_server_version()
# Bump when output schema changes materially (new fields, renamed fields, structure changes)
# v1: Initial recommendation record schema
# v2: Sub-scores carry status (measured/neutral_default/skipped), quality summary on records
SCHEMA_VERSION = "2"
