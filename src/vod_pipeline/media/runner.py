"""
Запуск внешних процессов (ffmpeg / ffprobe).

Единая точка: в тестах подменяется целиком.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass

from vod_pipeline.common.logging import get_transcode_logger

log = get_transcode_logger()

_STDERR_TAIL = 2000


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def stderr_tail(self) -> str:
        return self.stderr[-_STDERR_TAIL:]


class CommandTimeout(RuntimeError):
    pass


def run_command(cmd: list[str], *, timeout_sec: float) -> CommandResult:
    """
    Запускает команду и ждёт завершения.
    Таймаут -> CommandTimeout (процесс убит). Отсутствие бинарника -> FileNotFoundError.
    """
    log.debug("command_start", extra={"payload": {"cmd": cmd[0], "args": len(cmd) - 1}})
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout_sec,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandTimeout(f"{cmd[0]} timed out after {timeout_sec}s") from e
    return CommandResult(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
