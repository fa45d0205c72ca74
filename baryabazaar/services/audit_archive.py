"""Copies system log entries to S3 as daily JSON-lines objects."""
from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import-untyped]

from baryabazaar.core.config import Settings, get_settings
from baryabazaar.models import AuditLog
from baryabazaar.obs import AUDIT_ARCHIVE_COUNTER
from baryabazaar.services.audit import AuditLogFilters, AuditLogService
from baryabazaar.services.periods import TimeWindow

logger = logging.getLogger(__name__)


def entry_to_json(entry: AuditLog) -> str:
    payload = {
        "id": entry.id,
        "type": entry.type.value,
        "actor": entry.actor,
        "target": entry.target,
        "reason": entry.reason,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "created_at": entry.created_at.isoformat(),
    }
    return json.dumps(payload, default=str, sort_keys=True)


@dataclass(slots=True, frozen=True)
class ArchiveResult:
    window: TimeWindow
    archived: int
    keys: tuple[str, ...]
    succeeded: bool


class AuditArchiver:
    """Appends entries to ``<prefix>/YYYY/MM/DD/system-logs.jsonl`` in the archive bucket."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        s3_client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._s3_client_factory = s3_client_factory or self._default_client_factory
        self._s3_client: Any | None = None
        self._bucket_ready = False

    def _default_client_factory(self) -> Any:
        return boto3.client(
            "s3",
            region_name=self._settings.aws_region,
            endpoint_url=self._settings.s3_endpoint_url,
        )

    def _get_s3_client(self) -> Any:
        if self._s3_client is None:
            self._s3_client = self._s3_client_factory()
        return self._s3_client

    def _ensure_bucket(self, client: Any) -> None:
        if self._bucket_ready:
            return
        bucket = self._settings.audit_archive_bucket
        try:
            client.head_bucket(Bucket=bucket)
        except ClientError:
            create_params: dict[str, Any] = {"Bucket": bucket}
            if self._settings.aws_region != "us-east-1" and self._settings.s3_endpoint_url is None:
                create_params["CreateBucketConfiguration"] = {"LocationConstraint": self._settings.aws_region}
            client.create_bucket(**create_params)
        self._bucket_ready = True

    def daily_key(self, day: datetime) -> str:
        prefix = self._settings.audit_archive_prefix.rstrip("/")
        return f"{prefix}/{day:%Y/%m/%d}/system-logs.jsonl"

    def _read_existing(self, client: Any, key: str) -> bytes:
        try:
            return client.get_object(Bucket=self._settings.audit_archive_bucket, Key=key)["Body"].read()
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code")
            if error_code in {"404", "NoSuchKey"}:
                return b""
            raise

    def archive(self, entries: Iterable[AuditLog]) -> tuple[int, tuple[str, ...]]:
        """Append ``entries`` oldest-first to their day's object.

        Raises botocore errors; callers decide whether a failed run is retried.
        """

        grouped: dict[str, list[AuditLog]] = defaultdict(list)
        for entry in sorted(entries, key=lambda item: (item.created_at, item.id)):
            grouped[self.daily_key(entry.created_at)].append(entry)
        if not grouped:
            return 0, ()

        client = self._get_s3_client()
        self._ensure_bucket(client)
        archived = 0
        for key, items in grouped.items():
            existing = self._read_existing(client, key)
            payload = "".join(entry_to_json(item) + "\n" for item in items).encode("utf-8")
            client.put_object(
                Bucket=self._settings.audit_archive_bucket,
                Key=key,
                Body=existing + payload,
                ContentType="application/x-ndjson",
            )
            archived += len(items)
        AUDIT_ARCHIVE_COUNTER.inc(archived)
        return archived, tuple(grouped)

    def archive_window(self, audit: AuditLogService, window: TimeWindow) -> ArchiveResult:
        entries = audit.list_entries(AuditLogFilters(since=window.start, until=window.end))
        try:
            archived, keys = self.archive(entries)
        except (BotoCoreError, ClientError) as exc:
            logger.error(
                "failed to archive system logs",
                extra={"error": str(exc), "window_start": window.start.isoformat()},
            )
            return ArchiveResult(window=window, archived=0, keys=(), succeeded=False)
        logger.info("system logs archived", extra={"archived": archived, "objects": len(keys)})
        return ArchiveResult(window=window, archived=archived, keys=keys, succeeded=True)


__all__ = ["ArchiveResult", "AuditArchiver", "entry_to_json"]
