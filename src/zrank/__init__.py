from __future__ import annotations

from .zconfig import ZConfig
from .zindex import ZIndex
from .zrecorder import VisitRecorder
from .zstore import ZStore

__all__ = [
    "VisitRecorder",
    "ZConfig",
    "ZIndex",
    "ZStore",
]
