"""File based exporter writing JSON lines or CSV."""

from __future__ import annotations

import csv
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..errors import InvalidConfigError
from .base import BaseExporter

SUPPORTED_FORMATS = ("json", "csv")


class FileExporter(BaseExporter):
    """Write one record per line (``.jsonl``) or per row (``.csv``)."""

    def __init__(self, output_dir: Path, name: str, fmt: str, run_tag: str | None = None) -> None:
        if fmt not in SUPPORTED_FORMATS:
            raise InvalidConfigError(f"Unsupported export format: {fmt}")
        self.output_dir = output_dir
        self.name = name
        self.format = fmt
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.run_tag = run_tag or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        slug = re.sub(r"[^0-9A-Za-z_-]+", "_", name.strip()) or "results"
        self.path = self.output_dir / f"{slug}-{self.run_tag}.{self._extension}"
        self._file = self.path.open("w", encoding="utf-8", newline="")
        self._csv_writer: Optional[csv.DictWriter] = None

    @property
    def _extension(self) -> str:
        return "jsonl" if self.format == "json" else "csv"

    def export(self, record: dict) -> None:
        if self.format == "json":
            json.dump(record, self._file, ensure_ascii=False)
            self._file.write("\n")
            return
        if self._csv_writer is None:
            self._csv_writer = csv.DictWriter(self._file, fieldnames=list(record.keys()), extrasaction="ignore")
            self._csv_writer.writeheader()
        self._csv_writer.writerow(record)

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        self._file.close()


__all__ = ["FileExporter", "SUPPORTED_FORMATS"]
