"""
Relay Configuration Module

Environment-driven settings for the relay service.
"""

from .settings import (
    BACKEND_ASSEMBLYAI,
    BACKEND_LOCAL,
    BACKENDS,
    RelaySettings,
)

__all__ = [
    "BACKEND_ASSEMBLYAI",
    "BACKEND_LOCAL",
    "BACKENDS",
    "RelaySettings",
]
