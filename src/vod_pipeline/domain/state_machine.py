"""
Машина состояний видео-задачи.

Назначение:
- Централизованное управление переходами статусов
- READY и FAILED терминальны
- Основа для идемпотентной обработки повторных событий
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import JobStatus

# =============================================================================
# РАЗРЕШЁННЫЕ ПЕРЕХОДЫ
# =============================================================================
_ALLOWED: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.UPLOADED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.READY, JobStatus.FAILED}),
    JobStatus.READY: frozenset(),
    JobStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({JobStatus.READY, JobStatus.FAILED})


# =============================================================================
# РЕЗУЛЬТАТ ПЕРЕХОДА
# =============================================================================
@dataclass
class TransitionResult:
    ok: bool
    status: JobStatus
    reason: str | None = None


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _ALLOWED.get(current, frozenset())


def transition(current: JobStatus, target: JobStatus) -> TransitionResult:
    """
    Правила перехода:
    - UPLOADED   → PROCESSING
    - PROCESSING → READY | FAILED
    - READY / FAILED → никуда (терминальные)
    Недопустимый переход не меняет статус.
    """
    if can_transition(current, target):
        return TransitionResult(ok=True, status=target)

    reason = "terminal_status" if is_terminal(current) else "transition_not_allowed"
    return TransitionResult(ok=False, status=current, reason=reason)
