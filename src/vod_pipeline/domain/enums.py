"""
Доменные перечисления (enum).
"""

from __future__ import annotations

import enum


class JobStatus(str, enum.Enum):
    """
    Статус видео-задачи.
    """

    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


class ArtifactKind(str, enum.Enum):
    """
    Ключи в resolution_artifacts.
    """

    original = "original"
    hls_master = "hls_master"
