"""Snapshot depolama işbirlikçileri.

Çekirdek yalnızca düz sözlük snapshot üretir ve tüketir; bu modül
snapshot'ı bellekte veya S3'te JSON olarak saklar.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import ClientError

from smartsupply.config import CoreConfig
from smartsupply.exceptions import ValidationError

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def save(self, snapshot: dict) -> None: ...

    def load(self) -> Optional[dict]: ...


class InMemorySnapshotStore:
    """Test ve tek süreçli kullanım için bellek içi depo."""

    def __init__(self) -> None:
        self._snapshot: Optional[dict] = None

    def save(self, snapshot: dict) -> None:
        self._snapshot = copy.deepcopy(snapshot)

    def load(self) -> Optional[dict]:
        return copy.deepcopy(self._snapshot)


class S3SnapshotStore:
    """Snapshot'ı S3'te tek bir JSON nesnesi olarak saklar."""

    def __init__(
        self,
        bucket: str,
        key: str = "snapshots/latest.json",
        region_name: str = "us-east-1",
        s3_client: Optional[Any] = None,
    ):
        if not bucket:
            raise ValidationError("S3 bucket adı boş olamaz")
        self.bucket = bucket
        self.key = key
        # AWS istemcisi - dependency injection destekli
        self.s3 = s3_client or boto3.client("s3", region_name=region_name)

    @classmethod
    def from_config(cls, config: CoreConfig, s3_client: Optional[Any] = None) -> "S3SnapshotStore":
        if not config.snapshot_bucket:
            raise ValidationError("SMARTSUPPLY_SNAPSHOT_BUCKET tanımlı değil")
        return cls(
            bucket=config.snapshot_bucket,
            key=config.snapshot_key,
            region_name=config.region_name,
            s3_client=s3_client,
        )

    def save(self, snapshot: dict) -> None:
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=json.dumps(snapshot, default=str, ensure_ascii=False).encode("utf-8"),
                ContentType="application/json",
            )
        except ClientError as e:
            logger.error("S3 snapshot kayıt hatası [%s/%s]: %s", self.bucket, self.key, e)
            raise
        logger.info("Snapshot S3'e yazıldı: s3://%s/%s", self.bucket, self.key)

    def load(self) -> Optional[dict]:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self.key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                logger.info("S3'te snapshot yok: s3://%s/%s", self.bucket, self.key)
                return None
            logger.error("S3 snapshot okuma hatası [%s/%s]: %s", self.bucket, self.key, e)
            raise
        return json.loads(response["Body"].read())
