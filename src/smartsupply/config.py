"""Merkezi yapılandırma. .env dosyası yüklenir, ardından ortam değişkenleri okunur."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from smartsupply.exceptions import ValidationError

# Proje kokundeki .env dosyasi
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


@dataclass
class CoreConfig:
    region_name: str = "us-east-1"
    snapshot_bucket: Optional[str] = None
    snapshot_key: str = "snapshots/latest.json"
    return_window_days: int = 30
    default_priority: int = 3
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.return_window_days < 0:
            raise ValidationError(f"İade süresi negatif olamaz: {self.return_window_days}")
        if not 1 <= self.default_priority <= 5:
            raise ValidationError(f"Öncelik 1-5 arasında olmalı: {self.default_priority}")

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, load_env_file: bool = True
    ) -> "CoreConfig":
        """Ortam değişkenlerinden konfigürasyon oluşturur.

        environ verilmezse .env dosyası yüklenir ve os.environ kullanılır.
        """
        if environ is None:
            if load_env_file:
                load_dotenv(_ENV_PATH, override=False)
            environ = os.environ

        return cls(
            region_name=environ.get("AWS_DEFAULT_REGION", "us-east-1"),
            snapshot_bucket=environ.get("SMARTSUPPLY_SNAPSHOT_BUCKET") or None,
            snapshot_key=environ.get("SMARTSUPPLY_SNAPSHOT_KEY", "snapshots/latest.json"),
            return_window_days=_int_env(environ, "SMARTSUPPLY_RETURN_WINDOW_DAYS", 30),
            default_priority=_int_env(environ, "SMARTSUPPLY_DEFAULT_PRIORITY", 3),
            log_level=environ.get("SMARTSUPPLY_LOG_LEVEL", "INFO").upper(),
        )


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} tam sayı olmalı: {raw!r}") from None


def configure_logging(level: str = "INFO") -> None:
    """Script ve MCP sunucusu için temel log yapılandırması."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
