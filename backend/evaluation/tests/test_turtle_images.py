"""Tests for rendering turtle paths and comparing drawings."""

import base64
import io

import pytest
from PIL import Image

from evaluation.errors import TurtleValidationError
from evaluation.models import Dot, FillPolygon, PathSegment
from evaluation.turtle_images import (
    compare_images,
    image_to_data_url,
    ink_mask,
    load_reference_image,
    render_segments,
)


def line(x1, y1, x2, y2, **kwargs) -> PathSegment:
    return PathSegment(start=(x1, y1), end=(x2, y2), length=0.0, angle=0.0, **kwargs)


def drawing(*segments, size=(100, 100), background="white") -> Image.Image:
    return render_segments(list(segments), size[0], size[1], background)


class TestRender:
    def test_origin_is_the_canvas_centre(self):
        image = drawing(line(0, 0, 40, 0))
        assert image.getpixel((70, 50)) == (0, 0, 0)
        assert image.getpixel((30, 50)) == (255, 255, 255)

    def test_y_axis_points_up(self):
        image = drawing(line(0, 0, 0, 40))
        assert image.getpixel((50, 30)) == (0, 0, 0)
        assert image.getpixel((50, 70)) == (255, 255, 255)

    def test_colour_and_background(self):
        image = drawing(line(-20, 0, 20, 0, color="#ff0000"), background="black")
        assert image.getpixel((50, 50)) == (255, 0, 0)
        assert image.getpixel((5, 5)) == (0, 0, 0)

    def test_unknown_colour_falls_back_to_black(self):
        image = drawing(line(-20, 0, 20, 0, color="not-a-colour"))
        assert image.getpixel((50, 50)) == (0, 0, 0)

    def test_ink_mask_ignores_background(self):
        mask = ink_mask(drawing(line(-20, 0, 20, 0), background="navy"))
        assert mask[50, 50]
        assert not mask[10, 10]

    def test_fill_paints_the_interior_under_the_outline(self):
        outline = [line(0, 0, 30, 0), line(30, 0, 30, 30), line(30, 30, 0, 30), line(0, 30, 0, 0)]
        fill = FillPolygon(points=[(0, 0), (30, 0), (30, 30), (0, 30)], color="red")
        image = render_segments(outline, 100, 100, fills=[fill])
        assert image.getpixel((65, 35)) == (255, 0, 0)
        assert image.getpixel((80, 50)) == (0, 0, 0)
        assert image.getpixel((40, 60)) == (255, 255, 255)

    def test_dot_is_a_filled_circle(self):
        image = render_segments([], 100, 100, dots=[Dot(center=(10, 10), size=10, color="blue")])
        assert image.getpixel((60, 40)) == (0, 0, 255)
        assert image.getpixel((63, 37)) == (0, 0, 255)
        assert image.getpixel((60, 50)) == (255, 255, 255)


class TestCompare:
    def test_identical_drawings_match_completely(self):
        square = [line(-30, -30, 30, -30), line(30, -30, 30, 30), line(30, 30, -30, 30), line(-30, 30, -30, -30)]
        result = compare_images(drawing(*square), drawing(*square))
        assert result.similarity == 1.0
        assert result.passed
        assert result.num_diff_pixels == 0
        assert result.total_pixels == 100 * 100

    def test_one_pixel_offset_still_matches(self):
        result = compare_images(drawing(line(-40, 0, 40, 0)), drawing(line(-40, 1, 40, 1)))
        assert result.similarity == 1.0
        assert result.passed

    def test_different_drawings_score_low(self):
        result = compare_images(drawing(line(-40, 40, 40, 40)), drawing(line(-40, -40, 40, -40)))
        assert result.similarity < 0.1
        assert not result.passed
        assert result.num_diff_pixels > 0

    def test_missing_half_of_the_drawing_fails(self):
        full = drawing(line(-40, 0, 40, 0), line(0, -40, 0, 40))
        half = drawing(line(-40, 0, 40, 0))
        result = compare_images(half, full)
        assert 0.4 < result.similarity < 0.95
        assert not result.passed

    def test_two_blank_canvases_match(self):
        result = compare_images(drawing(), drawing())
        assert result.similarity == 1.0
        assert result.passed

    def test_threshold_is_applied(self):
        full = drawing(line(-40, 0, 40, 0), line(0, -40, 0, 40))
        half = drawing(line(-40, 0, 40, 0))
        assert compare_images(half, full, threshold=0.1).passed

    def test_size_mismatch_is_an_error(self):
        with pytest.raises(TurtleValidationError):
            compare_images(drawing(size=(100, 100)), drawing(size=(100, 80)))

    def test_diff_image_is_a_png_data_url(self):
        result = compare_images(drawing(line(-40, 0, 40, 0)), drawing(line(0, -40, 0, 40)))
        assert result.diff_image_data_url.startswith("data:image/png;base64,")
        assert compare_images(drawing(), drawing(), include_diff=False).diff_image_data_url is None


class TestLoadReference:
    async def test_data_url(self, tmp_path):
        original = drawing(line(-40, 0, 40, 0), size=(60, 40))
        loaded = await load_reference_image(image_to_data_url(original), tmp_path)
        assert loaded.size == (60, 40)
        assert loaded.mode == "RGB"

    async def test_malformed_data_url(self, tmp_path):
        with pytest.raises(TurtleValidationError):
            await load_reference_image("data:image/png;base64", tmp_path)

    async def test_undecodable_bytes(self, tmp_path):
        url = "data:image/png;base64," + base64.b64encode(b"not an image").decode("ascii")
        with pytest.raises(TurtleValidationError):
            await load_reference_image(url, tmp_path)

    async def test_file_under_assets_dir(self, tmp_path):
        (tmp_path / "turtle").mkdir()
        drawing(line(-40, 0, 40, 0)).save(tmp_path / "turtle" / "line.png")
        loaded = await load_reference_image("/turtle/line.png", tmp_path)
        assert loaded.getpixel((70, 50)) == (0, 0, 0)

    async def test_path_outside_assets_dir_is_rejected(self, tmp_path):
        assets = tmp_path / "assets"
        assets.mkdir()
        drawing().save(tmp_path / "secret.png")
        with pytest.raises(TurtleValidationError):
            await load_reference_image("../secret.png", assets)

    async def test_missing_file(self, tmp_path):
        with pytest.raises(TurtleValidationError):
            await load_reference_image("nope.png", tmp_path)

    async def test_transparent_pixels_become_white(self, tmp_path):
        buffer = io.BytesIO()
        Image.new("RGBA", (10, 10), (0, 0, 0, 0)).save(buffer, format="PNG")
        (tmp_path / "clear.png").write_bytes(buffer.getvalue())
        loaded = await load_reference_image("clear.png", tmp_path)
        assert loaded.getpixel((0, 0)) == (255, 255, 255)
