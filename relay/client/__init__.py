"""
Relay Viewer Client

Provides ClientReconciler (partial/final merging) and SSEViewer (the
reconnecting /events client that drives it).

Usage:
    from relay.client import SSEViewer

    viewer = SSEViewer("http://localhost:3000/events")
    viewer.reconciler.on_change = lambda: print(viewer.reconciler.get_text())
    await viewer.run()
"""

from .reconciler import ClientReconciler, ReconcilerState
from .viewer import ConnectionStatus, ReconnectPolicy, SSEViewer

__all__ = [
    "ClientReconciler",
    "ConnectionStatus",
    "ReconcilerState",
    "ReconnectPolicy",
    "SSEViewer",
]
