"""Backend bridges."""

from __future__ import annotations

from trsync.bridge.base import RemoteBridge
from trsync.bridge.transmission import TransmissionBridge

__all__ = ["RemoteBridge", "TransmissionBridge"]
