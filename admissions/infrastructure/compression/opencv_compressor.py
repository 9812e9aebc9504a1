"""
Adapter: OpenCV Compressor

Downscales and re-encodes image documents before upload:
  1. Size tier  → target dimensions + encoder quality
  2. Resize     → INTER_AREA, aspect ratio kept, never upscales
  3. Re-encode  → JPEG quality / PNG compression level

PDFs and office documents pass through untouched. A re-encode that comes
out larger than the original is discarded.
"""

import asyncio
import logging
from dataclasses import dataclass

import cv2
import numpy as np

from admissions.core.entities.document import IMAGE_TYPES, DocumentFile
from admissions.core.interfaces.compression_service import (
    CompressionError,
    CompressionResult,
    ICompressionService,
)

logger = logging.getLogger(__name__)

MB = 1024 * 1024


@dataclass(frozen=True)
class CompressionOptions:
    max_width: int
    max_height: int
    quality: float


class OpenCVCompressor(ICompressionService):
    """Image compression with OpenCV; deterministic, no network."""

    def __init__(
        self,
        large_threshold_mb: float = 2,
        medium_threshold_mb: float = 1,
        max_dimension_large: int = 800,
        max_dimension_medium: int = 1200,
        max_width: int = 1920,
        max_height: int = 1080,
        quality_large: float = 0.7,
        quality_medium: float = 0.8,
        quality_default: float = 0.85,
    ):
        self._large = CompressionOptions(max_dimension_large, max_dimension_large, quality_large)
        self._medium = CompressionOptions(max_dimension_medium, max_dimension_medium, quality_medium)
        self._default = CompressionOptions(max_width, max_height, quality_default)
        self._large_bytes = int(large_threshold_mb * MB)
        self._medium_bytes = int(medium_threshold_mb * MB)

    def recommend(self, size_bytes: int) -> CompressionOptions:
        """Bigger files get smaller targets and lower quality."""
        if size_bytes > self._large_bytes:
            return self._large
        if size_bytes > self._medium_bytes:
            return self._medium
        return self._default

    async def compress(self, files: list[DocumentFile]) -> CompressionResult:
        try:
            return await asyncio.to_thread(self._compress_all, files)
        except MemoryError as e:
            raise CompressionError(f"Not enough memory to compress {len(files)} file(s)") from e

    def _compress_all(self, files: list[DocumentFile]) -> CompressionResult:
        result = CompressionResult(files=[])
        for f in files:
            compressed = self._compress_one(f) if f.content_type in IMAGE_TYPES else f
            result.files.append(compressed)
            result.original_sizes[f.file_name] = f.size_bytes
            result.compressed_sizes[f.file_name] = compressed.size_bytes
        logger.info(
            f"Compressed {len(files)} file(s): {result.total_original} -> {result.total_compressed} bytes"
        )
        return result

    def _compress_one(self, f: DocumentFile) -> DocumentFile:
        img = cv2.imdecode(np.frombuffer(f.content, dtype=np.uint8), cv2.IMREAD_COLOR)
        if img is None:
            logger.warning(f"Could not decode {f.file_name}; uploading it unchanged")
            return f

        options = self.recommend(f.size_bytes)
        img = self._resize(img, options)
        is_png = f.content_type == "image/png"
        if is_png:
            ok, buf = cv2.imencode(".png", img, [cv2.IMWRITE_PNG_COMPRESSION, 9])
        else:
            ok, buf = cv2.imencode(".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, int(options.quality * 100)])
        if not ok:
            logger.warning(f"Could not re-encode {f.file_name}; uploading it unchanged")
            return f

        data = buf.tobytes()
        if len(data) >= f.size_bytes:
            return f
        return DocumentFile(file_name=f.file_name, content=data, content_type=f.content_type)

    @staticmethod
    def _resize(img: np.ndarray, options: CompressionOptions) -> np.ndarray:
        h, w = img.shape[:2]
        scale = min(options.max_width / w, options.max_height / h, 1.0)
        if scale >= 1.0:
            return img
        size = (max(1, int(w * scale)), max(1, int(h * scale)))
        return cv2.resize(img, size, interpolation=cv2.INTER_AREA)
