"""
Renderer capability shared by the format-specific watermarkers.

A renderer takes a stored source document and a viewer, and returns a rendition
(bytes in memory, or a file on disk) or raises RenderError. Renderers are picked
from a single table keyed on the normalised MIME family; anything not in the
table is served as-is.
"""
from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol

from app.dataroom.storage import Storage

if TYPE_CHECKING:
    from app.dataroom.modules.files.models import File
    from app.dataroom.rbac import Viewer


FAMILY_PDF = "pdf"
FAMILY_SPREADSHEET = "spreadsheet"
FAMILY_VIDEO = "video"


class RenderError(RuntimeError):
    """Watermarking failed; the caller decides whether to fall back."""


class EncodeTimeoutError(RenderError):
    """External encode exceeded its wall-clock budget and was killed."""


def mime_family(mime_type: str | None) -> str | None:
    mt = (mime_type or "").split(";", 1)[0].strip().lower()
    if not mt:
        return None
    if mt == "application/pdf":
        return FAMILY_PDF
    if "spreadsheet" in mt or "excel" in mt:
        return FAMILY_SPREADSHEET
    if mt.startswith("video/"):
        return FAMILY_VIDEO
    return None


@dataclass(frozen=True)
class Source:
    """Read access to a stored document's original bytes."""

    document: "File"
    storage: Storage

    @property
    def key(self) -> str:
        return self.document.storage_path

    @property
    def extension(self) -> str:
        return PurePosixPath(self.key).suffix or PurePosixPath(self.document.name).suffix

    def read_bytes(self) -> bytes:
        return self.storage.read_bytes(self.key)

    @contextmanager
    def local_path(self) -> Iterator[Path]:
        """
        Yield a filesystem path to the original. Remote objects are spooled to a
        temporary file that is removed on exit.
        """
        p = self.storage.local_path(self.key)
        if p is not None:
            yield p
            return
        with tempfile.NamedTemporaryFile(suffix=self.extension, delete=False) as tmp:
            with self.storage.open(self.key) as src:
                shutil.copyfileobj(src, tmp)
            tmp_path = Path(tmp.name)
        try:
            yield tmp_path
        finally:
            tmp_path.unlink(missing_ok=True)


@dataclass(frozen=True)
class Rendition:
    data: bytes | None = None
    path: Path | None = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.path is None):
            raise ValueError("Rendition needs exactly one of data or path")


class Renderer(Protocol):
    family: str

    def render(self, source: Source, viewer: "Viewer") -> Rendition:
        ...


def renderer_for(mime_type: str | None, renderers: dict[str, Renderer]) -> Renderer | None:
    family = mime_family(mime_type)
    if family is None:
        return None
    return renderers.get(family)
