from pathlib import Path

import pytest
from PIL import Image

from sitecompare.types import AlignPolicy
from sitecompare.visual.diff import RmseResult, VisualDiff, align_images


@pytest.mark.unit
class TestAlignImages:
    def test_crop_to_common_area(self) -> None:
        a = Image.new("RGB", (100, 300))
        b = Image.new("RGB", (80, 400))
        a2, b2 = align_images(a, b, AlignPolicy.CROP)
        assert a2.size == b2.size == (80, 300)

    def test_pad_to_largest(self) -> None:
        a = Image.new("RGB", (100, 300))
        b = Image.new("RGB", (80, 400))
        a2, b2 = align_images(a, b, AlignPolicy.PAD)
        assert a2.size == b2.size == (100, 400)

    def test_resize_to_width(self) -> None:
        a = Image.new("RGB", (200, 400))
        b = Image.new("RGB", (100, 150))
        a2, b2 = align_images(a, b, AlignPolicy.RESIZE, resize_width=50)
        assert a2.width == b2.width == 50
        assert a2.size == b2.size


@pytest.mark.unit
class TestVisualDiff:
    @pytest.fixture()
    def identical_images(self, tmp_path: Path) -> tuple[Path, Path]:
        """Create two identical test images."""
        img = Image.new("RGB", (100, 100), color=(255, 0, 0))
        baseline = tmp_path / "ref.png"
        current = tmp_path / "new.png"
        img.save(baseline)
        img.save(current)
        return baseline, current

    @pytest.fixture()
    def different_images(self, tmp_path: Path) -> tuple[Path, Path]:
        """Create two fully different test images."""
        baseline = tmp_path / "ref.png"
        current = tmp_path / "new.png"
        Image.new("RGB", (100, 100), color=(255, 0, 0)).save(baseline)
        Image.new("RGB", (100, 100), color=(0, 0, 255)).save(current)
        return baseline, current

    @pytest.mark.parametrize("policy", list(AlignPolicy))
    def test_identical_images_score_zero(
        self, tmp_path: Path, identical_images: tuple[Path, Path], policy: AlignPolicy
    ) -> None:
        differ = VisualDiff(align=policy, threshold=0.0)
        diff_path = tmp_path / "diff.png"
        result = differ.compare_rmse(*identical_images, diff_path=diff_path)
        assert isinstance(result, RmseResult)
        assert result.rmse == 0.0
        assert result.wrote_diff is False
        assert not diff_path.exists()

    def test_different_images(
        self, tmp_path: Path, different_images: tuple[Path, Path]
    ) -> None:
        differ = VisualDiff(threshold=0.1)
        diff_path = tmp_path / "out" / "diff.png"
        result = differ.compare_rmse(*different_images, diff_path=diff_path)
        assert result.rmse == pytest.approx((2 / 3) ** 0.5)
        assert result.wrote_diff is True
        assert result.diff_path == diff_path
        with Image.open(diff_path) as img:
            assert img.size == (100, 100)
            assert img.getpixel((50, 50)) == (255, 0, 255)

    def test_no_diff_without_threshold(
        self, tmp_path: Path, different_images: tuple[Path, Path]
    ) -> None:
        result = VisualDiff().compare_rmse(*different_images, diff_path=tmp_path / "d.png")
        assert result.rmse > 0
        assert result.wrote_diff is False

    def test_fuzz_ignores_small_differences(self) -> None:
        a = Image.new("RGB", (20, 20), color=(200, 200, 200))
        b = Image.new("RGB", (20, 20), color=(202, 198, 201))
        assert VisualDiff(fuzz=0.02).compare_rmse(a, b).rmse == 0.0
        assert VisualDiff(fuzz=0.0).compare_rmse(a, b).rmse > 0

    def test_crop_ignores_extra_height(self) -> None:
        a = Image.new("RGB", (30, 30), color=(10, 10, 10))
        b = Image.new("RGB", (30, 60), color=(10, 10, 10))
        b.paste((255, 255, 255), (0, 30, 30, 60))
        result = VisualDiff(align=AlignPolicy.CROP).compare_rmse(a, b)
        assert result.rmse == 0.0
        assert (result.compared_width, result.compared_height) == (30, 30)

    def test_pad_counts_extra_height(self) -> None:
        a = Image.new("RGB", (30, 30), color=(10, 10, 10))
        b = Image.new("RGB", (30, 60), color=(10, 10, 10))
        result = VisualDiff(align=AlignPolicy.PAD).compare_rmse(a, b)
        assert result.rmse > 0
        assert result.compared_height == 60
