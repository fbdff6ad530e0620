"""
Удаление артефактов видео-задачи (сырой файл + processed/{job_id}).
"""

from __future__ import annotations

import argparse

from vod_pipeline.common.logging import setup_logging
from vod_pipeline.services.cleanup import purge_job_artifacts
from vod_pipeline.storage.gateway import get_storage_gateway
from vod_pipeline.storage.job_store import get_job_store


def _args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Purge stored artifacts of a video job")
    p.add_argument("job_id", help="Video job id")
    return p.parse_args()


def main() -> int:
    args = _args()
    setup_logging()

    job = get_job_store().find_by_id(args.job_id)
    if job is None:
        print(f"Job not found: {args.job_id}")
        return 1

    result = purge_job_artifacts(get_storage_gateway(), job)
    print(f"existed={result.existed} removed={result.removed} errors={len(result.errors)}")
    for err in result.errors:
        print(f"  {err}")
    return 0 if not result.errors else 2


if __name__ == "__main__":
    raise SystemExit(main())
