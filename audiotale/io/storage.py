"""Filesystem layout for intermediate clips and final artifacts.

Responsibilities:
- Give every document its own working directory so concurrent documents never
  share clip filenames.
- Name final artifacts by document id, chunk range, and a short content-hash suffix.
- Write files atomically so the output directory never holds partial files.

Layout under `root`:
- `work/doc_<id>/<unit>.<random>/` line clips of one synthesis run
- `work/doc_<id>/narration/` per-chunk narration tracks
- `work/doc_<id>/group_<s>_<e>/` mixing scratch space
- `text/` merged chunk-group text
- `output/` final chunk-group artifacts
- `foley/` generated foley clips
"""

from __future__ import annotations

import os
from pathlib import Path
import shutil
import tempfile


def short_hash(content_hash: str) -> str:
    """Return the eight-character suffix used in artifact names."""

    return content_hash[:8]


class ArtifactStore:
    """Filesystem-backed artifact store rooted at one data directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def output_dir(self) -> Path:
        return self.root / "output"

    @property
    def text_dir(self) -> Path:
        return self.root / "text"

    @property
    def foley_dir(self) -> Path:
        return self.root / "foley"

    def document_work_dir(self, document_id: int) -> Path:
        return self.root / "work" / f"doc_{document_id}"

    def new_clip_dir(self, document_id: int, unit: str) -> Path:
        """Create a fresh clip directory owned by one synthesis run of `unit`.

        Runs of the same unit never share a directory, so one run cannot
        delete clips another run is still concatenating.
        """

        parent = self.document_work_dir(document_id)
        parent.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{unit}.", dir=parent))

    @staticmethod
    def clip_path(
        clip_dir: Path, document_id: int, unit: str, sequence: int, audio_format: str
    ) -> Path:
        """Return the deterministic path of one dialogue-line clip inside `clip_dir`."""

        return clip_dir / f"{document_id}_{unit}_{sequence:04d}.{audio_format}"

    def chunk_narration_path(
        self, document_id: int, index: int, content_hash: str, audio_format: str
    ) -> Path:
        name = f"doc_{document_id}_chunk_{index}_{short_hash(content_hash)}.{audio_format}"
        return self.document_work_dir(document_id) / "narration" / name

    def group_work_dir(self, document_id: int, start_index: int, end_index: int) -> Path:
        return self.document_work_dir(document_id) / f"group_{start_index}_{end_index}"

    def group_text_path(self, document_id: int, start_index: int, end_index: int) -> Path:
        return self.text_dir / f"doc_{document_id}_chunks_{start_index}_{end_index}.txt"

    def group_output_path(
        self,
        document_id: int,
        start_index: int,
        end_index: int,
        content_hash: str,
        audio_format: str,
    ) -> Path:
        name = (
            f"doc_{document_id}_chunks_{start_index}_{end_index}_"
            f"{short_hash(content_hash)}.{audio_format}"
        )
        return self.output_dir / name

    def save_text(self, path: Path, content: str) -> Path:
        """Atomically write UTF-8 text and return the final path."""

        return self._write_atomic(path, content.encode("utf-8"))

    def save_audio(self, path: Path, data: bytes) -> Path:
        """Atomically write audio bytes and return the final path."""

        return self._write_atomic(path, data)

    def publish(self, source: Path, destination: Path) -> Path:
        """Move a finished file into place without exposing a partial destination."""

        destination.parent.mkdir(parents=True, exist_ok=True)
        staging = destination.with_name(f".{destination.name}.partial")
        shutil.copyfile(source, staging)
        os.replace(staging, destination)
        return destination

    def reset_dir(self, path: Path) -> Path:
        """Remove `path` with all contents and recreate it empty."""

        self.remove_tree(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def remove_tree(path: Path) -> None:
        if path.exists():
            shutil.rmtree(path)

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
        return path
