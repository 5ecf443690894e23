"""
Per-viewer watermarking for dataroom documents.

Three renderers exist, keyed by MIME family: PDF (pypdf + reportlab),
spreadsheet (openpyxl) and video (ffmpeg, cached per viewer).
"""
from __future__ import annotations

from flask import Flask, current_app

from app.dataroom.watermark.base import (
    FAMILY_PDF,
    FAMILY_SPREADSHEET,
    FAMILY_VIDEO,
    EncodeTimeoutError,
    Renderer,
    Rendition,
    RenderError,
    Source,
    mime_family,
    renderer_for,
)
from app.dataroom.watermark.excel import ExcelRenderer, watermark_excel
from app.dataroom.watermark.pdf import PdfRenderer, watermark_pdf
from app.dataroom.watermark.video import VideoRenderer, VideoWatermarker

__all__ = [
    "FAMILY_PDF",
    "FAMILY_SPREADSHEET",
    "FAMILY_VIDEO",
    "EncodeTimeoutError",
    "Renderer",
    "Rendition",
    "RenderError",
    "Source",
    "VideoWatermarker",
    "build_renderers",
    "init_watermarking",
    "invalidate_video_cache",
    "mime_family",
    "renderer_for",
    "renderers",
    "watermark_excel",
    "watermark_pdf",
]


def build_renderers(video: VideoWatermarker) -> dict[str, Renderer]:
    return {
        FAMILY_PDF: PdfRenderer(),
        FAMILY_SPREADSHEET: ExcelRenderer(),
        FAMILY_VIDEO: VideoRenderer(video),
    }


def init_watermarking(app: Flask) -> None:
    # One watermarker per process: its in-flight registry must be shared by all requests.
    video = VideoWatermarker(
        app.config["CACHE_DIR"],
        ffmpeg_path=app.config.get("FFMPEG_PATH") or "ffmpeg",
        timeout=float(app.config.get("VIDEO_ENCODE_TIMEOUT") or 15.0),
    )
    app.extensions["video_watermarker"] = video
    app.extensions["renderers"] = build_renderers(video)


def renderers(app: Flask | None = None) -> dict[str, Renderer]:
    return (app or current_app).extensions["renderers"]


def invalidate_video_cache(document_id: int, app: Flask | None = None) -> int:
    video: VideoWatermarker = (app or current_app).extensions["video_watermarker"]
    return video.invalidate(document_id)
