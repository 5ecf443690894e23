"""
Video watermarking with a per-viewer rendition cache.

Renditions are burned in by an external ffmpeg process and cached on disk as
`<document_id>_<viewer_key><ext>`. A cache entry, once written, stays valid until
the document is deleted (documents are immutable after upload).

- The encode writes to a temp file next to the cache entry and is moved into place
  with os.replace, so a half-written file is never seen as a cache hit.
- Each encode is bounded by a wall-clock timeout. On expiry the process gets
  SIGTERM, then SIGKILL after a grace period, the partial output is removed and
  EncodeTimeoutError is raised.
- At most one encode runs per cache key. Concurrent callers for the same
  (document, viewer) wait on the in-flight encode's Future.
- invalidate() bumps a per-document generation. An encode that started under an
  older generation discards its output instead of publishing it.
"""
from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
import uuid
from concurrent.futures import Future
from pathlib import Path
from typing import TYPE_CHECKING

from app.dataroom.watermark.base import (
    FAMILY_VIDEO,
    EncodeTimeoutError,
    Rendition,
    RenderError,
    Source,
)

if TYPE_CHECKING:
    from app.dataroom.rbac import Viewer

logger = logging.getLogger(__name__)

CAPTION = "CONFIDENTIAL"
KILL_GRACE_SECONDS = 5.0


def escape_drawtext(text: str) -> str:
    """Escape special characters for FFmpeg drawtext filter."""
    text = text.replace("\\", "\\\\")
    text = text.replace(":", "\\:")
    text = text.replace("'", "\\'")
    text = text.replace("%", "\\%")
    return text


def _safe_key_part(value: object) -> str:
    # "_" separates document id from viewer key; keep it out of both parts.
    return re.sub(r"[^A-Za-z0-9-]", "-", str(value))


class VideoWatermarker:
    def __init__(
        self,
        cache_dir: str | os.PathLike,
        *,
        ffmpeg_path: str = "ffmpeg",
        timeout: float = 15.0,
        kill_grace: float = KILL_GRACE_SECONDS,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.kill_grace = kill_grace
        self._lock = threading.Lock()
        self._inflight: dict[Path, Future] = {}
        self._generations: dict[str, int] = {}

    def cache_path(self, document_id: int | str, viewer_key: str, ext: str) -> Path:
        return self.cache_dir / f"{_safe_key_part(document_id)}_{_safe_key_part(viewer_key)}{ext}"

    def lookup(self, document_id: int | str, viewer_key: str, ext: str) -> Path | None:
        p = self.cache_path(document_id, viewer_key, ext)
        return p if p.is_file() else None

    def build_command(self, source_path: Path, label: str, output_path: Path) -> list[str]:
        label_layer = (
            f"drawtext=text='{escape_drawtext(label)}'"
            ":fontsize=28"
            ":fontcolor=white@0.25"
            ":x=(w-tw)/2:y=(h-th)/2"
            ":shadowcolor=black@0.15:shadowx=2:shadowy=2"
        )
        caption_layer = (
            f"drawtext=text='{CAPTION}'"
            ":fontsize=20"
            ":fontcolor=white@0.2"
            ":x=(w-tw)/2:y=(h-th)/2+40"
        )
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-i", str(source_path),
            "-vf", f"{label_layer},{caption_layer}",
            "-c:a", "copy",
            str(output_path),
        ]

    def watermark(self, source_path: str | os.PathLike, label: str, document_id: int | str, viewer_key: str) -> Path:
        """Return the cached rendition for (document, viewer), encoding it on a miss."""
        source_path = Path(source_path)
        doc_key = _safe_key_part(document_id)
        target = self.cache_path(document_id, viewer_key, source_path.suffix)
        if target.is_file():
            logger.debug("Video cache hit: %s", target.name)
            return target

        with self._lock:
            future = self._inflight.get(target)
            is_leader = future is None
            if is_leader:
                future = Future()
                self._inflight[target] = future
            generation = self._generations.get(doc_key, 0)

        if not is_leader:
            logger.info("Video encode already in flight for %s; waiting", target.name)
            return future.result()

        try:
            # A previous leader may have finished between the first check and the lock.
            if target.is_file():
                result = target
            else:
                result = self._encode(source_path, label, target, doc_key=doc_key, generation=generation)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight.pop(target, None)

    def _is_current(self, doc_key: str, generation: int) -> bool:
        return self._generations.get(doc_key, 0) == generation

    def _encode(self, source_path: Path, label: str, target: Path, *, doc_key: str, generation: int) -> Path:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(f"{target.stem}.{uuid.uuid4().hex}.partial{target.suffix}")
        cmd = self.build_command(source_path, label, partial)

        logger.info("Video cache miss: encoding %s -> %s (timeout=%ss)", source_path.name, target.name, self.timeout)
        try:
            process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
        except OSError as e:
            raise RenderError(f"Cannot start video encoder {cmd[0]!r}: {e}") from e

        try:
            _, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            self._terminate(process)
            partial.unlink(missing_ok=True)
            logger.error(
                "Video encode exceeded %ss for %s; PID %s killed and partial output removed",
                self.timeout,
                target.name,
                process.pid,
            )
            raise EncodeTimeoutError(f"Video encode timed out after {self.timeout}s")
        except BaseException:
            self._terminate(process)
            partial.unlink(missing_ok=True)
            raise

        if process.returncode != 0:
            partial.unlink(missing_ok=True)
            tail = (stderr or b"").decode(errors="replace").strip()[-500:]
            raise RenderError(f"Video encoder exited with code {process.returncode}: {tail}")

        # Publish under the lock so invalidate() sees either no entry or a finished one.
        with self._lock:
            if not self._is_current(doc_key, generation):
                partial.unlink(missing_ok=True)
                logger.warning("Document %s invalidated during encode; discarded %s", doc_key, target.name)
                raise RenderError(f"Document {doc_key} was invalidated during encode")
            try:
                os.replace(partial, target)
            except OSError as e:
                partial.unlink(missing_ok=True)
                raise RenderError(f"Encoded video could not be moved into the cache: {e}") from e

        logger.info("Video rendition cached: %s", target.name)
        return target

    def _terminate(self, process: subprocess.Popen) -> None:
        if process.poll() is not None:
            return
        logger.info("Sending SIGTERM to encoder PID %s", process.pid)
        try:
            process.terminate()
            try:
                process.communicate(timeout=self.kill_grace)
            except subprocess.TimeoutExpired:
                logger.warning("Encoder PID %s did not terminate, sending SIGKILL", process.pid)
                process.kill()
                process.communicate()
        except ProcessLookupError:
            pass  # Process already dead

    def invalidate(self, document_id: int | str) -> int:
        """Delete every cached rendition of `document_id`, for all viewers."""
        doc_key = _safe_key_part(document_id)
        prefix = f"{doc_key}_"
        removed = 0
        with self._lock:
            self._generations[doc_key] = self._generations.get(doc_key, 0) + 1
            try:
                entries = list(self.cache_dir.iterdir())
            except FileNotFoundError:
                return 0
            for p in entries:
                if p.name.startswith(prefix) and p.is_file():
                    p.unlink(missing_ok=True)
                    removed += 1
        if removed:
            logger.info("Invalidated %s cached video rendition(s) for document %s", removed, document_id)
        return removed


class VideoRenderer:
    family = FAMILY_VIDEO

    def __init__(self, watermarker: VideoWatermarker) -> None:
        self.watermarker = watermarker

    def render(self, source: Source, viewer: "Viewer") -> Rendition:
        doc_id = source.document.id
        cached = self.watermarker.lookup(doc_id, viewer.cache_key, source.extension)
        if cached is not None:
            return Rendition(path=cached)
        with source.local_path() as src:
            return Rendition(path=self.watermarker.watermark(src, viewer.label, doc_id, viewer.cache_key))
