"""Use cases layer - Business logic orchestration for cleanup runs.

Use cases depend only on ports, not concrete implementations.
"""

from .delete_devices import DeleteDevicesUseCase, build_batches, chunk
from .reconcile import ReconcileUseCase

__all__ = [
    "DeleteDevicesUseCase",
    "ReconcileUseCase",
    "build_batches",
    "chunk",
]
