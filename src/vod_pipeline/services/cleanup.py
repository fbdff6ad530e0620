"""
Очистка артефактов видео (для коллаборатора удаления записи).
"""

from __future__ import annotations

from vod_pipeline.common.errors import StorageIOError
from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.domain.models import Job
from vod_pipeline.storage.gateway import StorageGateway, TreeDeletion

log = get_project_logger()


def purge_job_artifacts(gateway: StorageGateway, job: Job) -> TreeDeletion:
    """
    Удаляет сырой файл (если есть) и дерево {owner}/videos/processed/{job_id}.
    Ошибки удаления собираются в результат, наружу не пробрасываются
    (кроме PathViolation).
    """
    raw_error: str | None = None
    if job.original_path:
        try:
            gateway.delete(job.original_path)
        except StorageIOError as e:
            raw_error = f"{job.original_path}: {e.message}"

    result = gateway.delete_tree(gateway.processed_key(job.owner_id, job.id))
    if raw_error:
        result.errors.append(raw_error)

    log.info(
        "job_artifacts_purged",
        extra={
            "payload": {
                "job_id": job.id,
                "owner_id": job.owner_id,
                "tree_existed": result.existed,
                "removed": result.removed,
                "errors": len(result.errors),
            }
        },
    )
    return result
