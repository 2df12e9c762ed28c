"""
api/routes/config.py

GET /api/config — the aggregation settings the running Aggregator was built with

Read-only: the Aggregator's bounds are fixed for its lifetime, so changing
them means restarting with new environment variables or CLI flags.
"""

from __future__ import annotations

from fastapi import APIRouter

from ...config import get_settings
from ..serializers import ConfigResponse

router = APIRouter(prefix="/config", tags=["config"])

_active_config: ConfigResponse | None = None


def set_active_config(config: ConfigResponse) -> None:
    """Record the configuration actually in use (CLI flags may override env)."""
    global _active_config
    _active_config = config


@router.get("", response_model=ConfigResponse)
async def read_config() -> ConfigResponse:
    """Return the active aggregation settings."""
    if _active_config is None:
        return ConfigResponse.from_settings(get_settings())
    return _active_config
