"""
Optional inference backends for drone_kit.

Backends are kept in a separate module so core functionality (pre/post-processing)
stays lightweight and can be used without installing inference runtimes.
"""

from __future__ import annotations

from .base import InferenceBackend, Shape, backend_for_path

__all__ = ["InferenceBackend", "Shape", "backend_for_path"]
