"""
OpenCVCompressor: size tiers, resize and re-encode.
"""
import cv2
import numpy as np
import pytest

from admissions.core.entities.document import DocumentFile
from admissions.infrastructure.compression.opencv_compressor import MB, OpenCVCompressor


def encoded(width: int, height: int, ext: str = ".jpg", params=None) -> bytes:
    rng = np.random.default_rng(42)
    img = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    ok, buf = cv2.imencode(ext, img, params or [cv2.IMWRITE_JPEG_QUALITY, 100])
    assert ok
    return buf.tobytes()


@pytest.fixture
def compressor():
    return OpenCVCompressor()


@pytest.mark.parametrize(
    "size,expected",
    [
        (3 * MB, (800, 800, 0.7)),
        (int(1.5 * MB), (1200, 1200, 0.8)),
        (200 * 1024, (1920, 1080, 0.85)),
    ],
)
def test_recommend_tiers(compressor, size, expected):
    options = compressor.recommend(size)
    assert (options.max_width, options.max_height, options.quality) == expected


@pytest.mark.asyncio
async def test_large_photo_is_downscaled(compressor):
    original = DocumentFile("scan.jpg", encoded(2400, 1600), "image/jpeg")
    assert original.size_bytes > 2 * MB

    result = await compressor.compress([original])
    (out,) = result.files
    assert out.file_name == "scan.jpg"
    assert out.size_bytes < original.size_bytes
    img = cv2.imdecode(np.frombuffer(out.content, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert max(img.shape[:2]) <= 800
    assert img.shape[1] >= 799 and img.shape[0] >= 532
    assert result.savings_ratio > 0.5


@pytest.mark.asyncio
async def test_small_image_keeps_dimensions(compressor):
    original = DocumentFile("me.png", encoded(300, 200, ".png", [cv2.IMWRITE_PNG_COMPRESSION, 0]), "image/png")
    result = await compressor.compress([original])
    img = cv2.imdecode(np.frombuffer(result.files[0].content, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert img.shape[:2] == (200, 300)
    assert result.files[0].size_bytes <= original.size_bytes


@pytest.mark.asyncio
async def test_non_images_pass_through(compressor):
    pdf = DocumentFile("transcript.pdf", b"%PDF-1.4 " + b"0" * 4096, "application/pdf")
    garbage = DocumentFile("broken.jpg", b"not really a jpeg", "image/jpeg")
    result = await compressor.compress([pdf, garbage])
    assert result.files[0] is pdf
    assert result.files[1] is garbage
    assert result.savings_ratio == 0.0


@pytest.mark.asyncio
async def test_order_is_preserved(compressor):
    files = [
        DocumentFile("a.pdf", b"%PDF a", "application/pdf"),
        DocumentFile("b.jpg", encoded(400, 300), "image/jpeg"),
        DocumentFile("c.pdf", b"%PDF c", "application/pdf"),
    ]
    result = await compressor.compress(files)
    assert [f.file_name for f in result.files] == ["a.pdf", "b.jpg", "c.pdf"]
