"""Visual regression diff engine using Pillow."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path

import structlog
from PIL import Image, ImageChops

from sitecompare.constants import DEFAULT_FUZZ, PAD_FILL
from sitecompare.types import AlignPolicy

logger = structlog.get_logger(__name__)

DIFF_COLOR = (255, 0, 255)


@dataclass
class RmseResult:
    """Result of a visual comparison."""

    rmse: float
    compared_width: int
    compared_height: int
    wrote_diff: bool = False
    diff_path: Path | None = None


def _load(image: Image.Image | Path | str) -> Image.Image:
    if isinstance(image, Image.Image):
        return image.convert("RGB")
    with Image.open(image) as img:
        return img.convert("RGB")


def _scale_to_width(img: Image.Image, width: int) -> Image.Image:
    if img.width == width:
        return img
    height = max(1, round(img.height * width / img.width))
    return img.resize((width, height), Image.Resampling.LANCZOS)


def align_images(
    a: Image.Image,
    b: Image.Image,
    policy: AlignPolicy = AlignPolicy.CROP,
    resize_width: int | None = None,
) -> tuple[Image.Image, Image.Image]:
    """Bring two images to the same size according to the alignment policy."""
    if policy == AlignPolicy.PAD:
        width, height = max(a.width, b.width), max(a.height, b.height)
        padded = []
        for img in (a, b):
            if img.size == (width, height):
                padded.append(img)
                continue
            canvas = Image.new("RGB", (width, height), PAD_FILL)
            canvas.paste(img, (0, 0))
            padded.append(canvas)
        return padded[0], padded[1]

    if policy == AlignPolicy.RESIZE:
        width = resize_width or min(a.width, b.width)
        a = _scale_to_width(a, width)
        b = _scale_to_width(b, width)

    width, height = min(a.width, b.width), min(a.height, b.height)
    return a.crop((0, 0, width, height)), b.crop((0, 0, width, height))


class VisualDiff:
    """Compares two screenshots with a fuzz-tolerant RMSE metric."""

    def __init__(
        self,
        align: AlignPolicy = AlignPolicy.CROP,
        fuzz: float = DEFAULT_FUZZ,
        threshold: float | None = None,
    ) -> None:
        self._align = align
        self._fuzz = fuzz
        self._threshold = threshold

    def compare_rmse(
        self,
        image_a: Image.Image | Path | str,
        image_b: Image.Image | Path | str,
        diff_path: Path | None = None,
        resize_width: int | None = None,
    ) -> RmseResult:
        """Align both images and return their normalized (0..1) RMSE."""
        a, b = align_images(_load(image_a), _load(image_b), self._align, resize_width)
        width, height = a.size
        pixels = width * height
        if not pixels:
            logger.warning("visual_diff_empty", align=self._align.value)
            return RmseResult(rmse=0.0, compared_width=width, compared_height=height)

        difference = ImageChops.difference(a, b)
        cutoff = int(self._fuzz * 255)
        histogram = difference.histogram()
        squares = 0
        for band in range(3):
            for value in range(cutoff + 1, 256):
                squares += histogram[band * 256 + value] * value * value
        rmse = math.sqrt(squares / (3 * pixels)) / 255

        result = RmseResult(rmse=rmse, compared_width=width, compared_height=height)
        if self._threshold is not None and rmse > self._threshold and diff_path:
            self._write_diff(a, difference, cutoff, diff_path)
            result.wrote_diff = True
            result.diff_path = diff_path

        logger.debug(
            "visual_diff_complete",
            rmse=round(rmse, 6),
            threshold=self._threshold,
            align=self._align.value,
            width=width,
            height=height,
            wrote_diff=result.wrote_diff,
        )
        return result

    def _write_diff(
        self, base: Image.Image, difference: Image.Image, cutoff: int, diff_path: Path
    ) -> None:
        red, green, blue = difference.split()
        strongest = ImageChops.lighter(ImageChops.lighter(red, green), blue)
        mask = strongest.point(lambda p: 255 if p > cutoff else 0)
        dimmed = base.point(lambda p: p // 3)
        marked = Image.new("RGB", base.size, DIFF_COLOR)
        diff_path.parent.mkdir(parents=True, exist_ok=True)
        Image.composite(marked, dimmed, mask).save(diff_path)
        logger.info("visual_diff_written", path=str(diff_path))
