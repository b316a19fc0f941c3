"""Bulk import defaults."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_int

DEFAULT_IMPORT_WORKERS = 1


@dataclass(frozen=True, slots=True)
class ImportConfig:
    # 1 keeps the store calls strictly sequential
    workers: int = DEFAULT_IMPORT_WORKERS


def get_import_config() -> ImportConfig:
    return ImportConfig(
        workers=env_int("POLIPULSE_IMPORT_WORKERS", default=DEFAULT_IMPORT_WORKERS, minimum=1),
    )
