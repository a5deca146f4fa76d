"""
Domain models — Pydantic types for devx.

All models are re-exported here for convenient access:

    from devx.core.models import StackConfig, StackState, StackStatus
"""

from devx.core.models.stack import (
    BuildConfig,
    NetworkConfig,
    PluginConfig,
    ServiceConfig,
    StackConfig,
    VolumeConfig,
)
from devx.core.models.state import (
    EPOCH,
    BuildStatus,
    DevxState,
    StackState,
    StackStatus,
)

__all__ = [
    "EPOCH",
    # stack.py
    "BuildConfig",
    # state.py
    "BuildStatus",
    "DevxState",
    "NetworkConfig",
    "PluginConfig",
    "ServiceConfig",
    "StackConfig",
    "StackState",
    "StackStatus",
    "VolumeConfig",
]
