"""Run-scoped file layout.

Each run owns ``<root>/<run_id>/`` with ``images/``, ``clips/``, ``audio/``
and ``build/`` below it; no run touches another run's directory.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


def sanitize_filename(name: str) -> str:
    """Lowercase ``name`` and collapse anything non-alphanumeric to '_'."""
    cleaned = re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE)
    return re.sub(r"_+", "_", cleaned).lower()


def new_run_id(topic: str = "") -> str:
    """Build a unique, filesystem-safe run id."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    slug = sanitize_filename(topic).strip("_")[:40]
    suffix = uuid.uuid4().hex[:8]
    return "_".join(p for p in (slug, stamp, suffix) if p)


@dataclass(frozen=True)
class Workspace:
    root: Path
    run_id: str

    @property
    def run_dir(self) -> Path:
        return self.root / self.run_id

    @property
    def images_dir(self) -> Path:
        return self.run_dir / "images"

    @property
    def clips_dir(self) -> Path:
        return self.run_dir / "clips"

    @property
    def audio_dir(self) -> Path:
        return self.run_dir / "audio"

    @property
    def build_dir(self) -> Path:
        return self.run_dir / "build"

    def image_path(self, beat_index: int) -> Path:
        return self.images_dir / f"image_{beat_index:02d}.jpg"

    def clip_path(self, beat_index: int) -> Path:
        return self.clips_dir / f"clip_{beat_index:02d}.mp4"

    @property
    def picture_lock_path(self) -> Path:
        return self.build_dir / "video_piclock.mp4"

    @property
    def master_path(self) -> Path:
        return self.build_dir / "master.mp4"

    @property
    def report_path(self) -> Path:
        return self.build_dir / "report.json"

    @property
    def credits_path(self) -> Path:
        return self.build_dir / "credits.json"

    @property
    def status_path(self) -> Path:
        return self.run_dir / "status.json"

    def ensure(self) -> Workspace:
        for d in (self.images_dir, self.clips_dir, self.audio_dir, self.build_dir):
            d.mkdir(parents=True, exist_ok=True)
        return self
