"""批量上传：整批准入，逐个入库，按实际成功的字节数提交配额。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.packages.cloudstore.core.constants import HTTP_STATUS_BAD_REQUEST
from app.packages.cloudstore.core.enums import ErrorKind, FileTypeEnum
from app.packages.cloudstore.core.exceptions import AppException, StorageError
from app.packages.cloudstore.core.logger import get_logger
from app.packages.cloudstore.services.ingestion_service import IngestionOutcome, IngestionPipeline, UploadItem
from app.packages.cloudstore.services.organizer_service import PhotoOrganizer, schedule_in_thread
from app.packages.cloudstore.services.quota_service import QuotaLedger

logger = get_logger("batch")

Scheduler = Callable[..., Any]


@dataclass
class BatchFailure:
    name: str
    kind: str
    msg: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "kind": self.kind, "msg": self.msg}


@dataclass
class BatchResult:
    succeeded: List[IngestionOutcome] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)
    committed_bytes: int = 0
    organize_scheduled: bool = False

    @property
    def failed_count(self) -> int:
        return len(self.failures)


class BatchIngestionCoordinator:
    def __init__(
        self,
        pipeline: IngestionPipeline,
        quota: QuotaLedger,
        organizer: PhotoOrganizer,
        *,
        max_files: int = 20,
    ) -> None:
        self.pipeline = pipeline
        self.quota = quota
        self.organizer = organizer
        self.max_files = max_files

    def ingest_batch(
        self,
        db: Session,
        user_id: int,
        items: Sequence[UploadItem],
        *,
        auto_organize: bool = False,
        schedule: Optional[Scheduler] = None,
    ) -> BatchResult:
        """批量上传入口。

        准入检查针对整批总大小只做一次，失败时不写入任何文件；通过后每个文件独立走
        上传流水线，单个文件失败只计入 ``failures``。``schedule`` 形如
        ``BackgroundTasks.add_task``，用于在响应返回后触发照片整理。
        """
        if not items:
            raise AppException("请至少选择一个文件", HTTP_STATUS_BAD_REQUEST)
        if len(items) > self.max_files:
            raise StorageError(
                ErrorKind.TOO_MANY_FILES,
                f"单次最多上传 {self.max_files} 个文件",
                data={"limit": self.max_files, "received": len(items)},
            )

        user = self.quota.get_user(db, user_id)
        total_bytes = sum(item.size for item in items)
        self.quota.ensure_admission(user, total_bytes)

        result = BatchResult()
        for item in items:
            try:
                outcome = self.pipeline.ingest(db, user_id, item, commit_quota=False, admitted=True)
            except StorageError as exc:
                result.failures.append(BatchFailure(item.original_name, exc.kind.value, str(exc.detail)))
                logger.warning(
                    "Batch item %s failed: %s", item.original_name, exc.detail,
                    exc_info=True, extra={"user_id": user_id, "file_name": item.original_name},
                )
                continue
            except Exception as exc:
                result.failures.append(BatchFailure(item.original_name, ErrorKind.STORE_FAILED.value, str(exc)))
                logger.warning(
                    "Batch item %s failed unexpectedly", item.original_name,
                    exc_info=True, extra={"user_id": user_id, "file_name": item.original_name},
                )
                continue
            result.succeeded.append(outcome)

        result.committed_bytes = sum(outcome.size for outcome in result.succeeded)
        self.quota.commit(db, user_id, result.committed_bytes)

        has_images = any(o.record.file_type == FileTypeEnum.IMAGE.value for o in result.succeeded)
        if auto_organize and has_images:
            (schedule or schedule_in_thread)(self.organizer.organize_in_background, user_id)
            result.organize_scheduled = True

        logger.info(
            "Batch upload finished: %s succeeded, %s failed, %s bytes committed",
            len(result.succeeded), result.failed_count, result.committed_bytes,
            extra={"user_id": user_id, "batch_size": len(items)},
        )
        return result
