"""Unit tests for the transform registry and image codec helpers."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from pixelqueue.core.exceptions import DecodeError, TransformError, ValidationError
from pixelqueue.services.transforms import (
    CropTransform,
    ResizeTransform,
    Transform,
    decode_image,
    default_registry,
    encode_jpeg,
)


@pytest.fixture()
def registry():
    return default_registry()


@pytest.fixture()
def image():
    return Image.new("RGB", (400, 300), (10, 120, 240))


def test_default_registry_exposes_builtin_actions(registry) -> None:
    assert registry.names() == ["crop", "grayscale", "resize"]
    assert "Resize" in registry
    assert "blur" not in registry


def test_resize_produces_exact_dimensions(registry, image) -> None:
    result = registry.apply("resize", image, "100x50")
    assert result.size == (100, 50)


def test_resize_accepts_surrounding_whitespace(registry, image) -> None:
    assert registry.apply("resize", image, " 64x64 ").size == (64, 64)


@pytest.mark.parametrize("params", ["", "100", "100x", "x50", "100X50", "-1x5", "10x10x10", "axb"])
def test_resize_rejects_malformed_params(registry, image, params) -> None:
    with pytest.raises(ValidationError):
        registry.apply("resize", image, params)


def test_resize_rejects_zero_dimension() -> None:
    with pytest.raises(ValidationError, match="must be positive"):
        ResizeTransform.parse("0x10")


def test_crop_rebases_origin(registry, image) -> None:
    result = registry.apply("crop", image, "10,20,110,70")
    assert result.size == (100, 50)
    assert result.getpixel((0, 0)) == image.getpixel((10, 20))


def test_crop_full_image_is_allowed(registry, image) -> None:
    assert registry.apply("crop", image, "0,0,400,300").size == (400, 300)


@pytest.mark.parametrize(
    "params",
    [
        "10,10,5,5",      # inverted
        "10,10,10,20",    # empty width
        "0,0,401,300",    # past right edge
        "0,0,400,301",    # past bottom edge
        "-1,0,10,10",     # negative origin
    ],
)
def test_crop_rejects_out_of_bounds_or_empty(registry, image, params) -> None:
    with pytest.raises(ValidationError, match="invalid crop coordinates"):
        registry.apply("crop", image, params)


@pytest.mark.parametrize("params", ["1,2,3", "a,b,c,d", "1,2,3,4,5", ""])
def test_crop_rejects_malformed_params(params) -> None:
    with pytest.raises(ValidationError):
        CropTransform.parse(params)


def test_grayscale_is_single_channel_and_idempotent(registry, image) -> None:
    once = registry.apply("grayscale", image)
    twice = registry.apply("grayscale", once)

    assert once.mode == "L"
    assert once.size == image.size
    assert list(once.getdata()) == list(twice.getdata())


def test_grayscale_ignores_params(registry, image) -> None:
    assert registry.apply("grayscale", image, "whatever").mode == "L"


def test_unknown_action_lists_allowed_names(registry, image) -> None:
    with pytest.raises(ValidationError, match="Allowed: crop, grayscale, resize"):
        registry.get("blur")


def test_action_lookup_is_case_insensitive(registry) -> None:
    assert registry.get("  GrayScale ").name == "grayscale"


def test_registered_transform_is_dispatchable(registry, image) -> None:
    class FlipTransform(Transform):
        name = "flip"

        def apply(self, image, params):
            return image.transpose(Image.Transpose.FLIP_LEFT_RIGHT)

    registry.register(FlipTransform())
    assert registry.apply("flip", image).size == image.size


def test_library_failures_become_transform_errors(registry, image) -> None:
    class BrokenTransform(Transform):
        name = "broken"

        def apply(self, image, params):
            raise RuntimeError("boom")

    registry.register(BrokenTransform())
    with pytest.raises(TransformError, match="boom"):
        registry.apply("broken", image)


def test_decode_rejects_non_image_bytes() -> None:
    with pytest.raises(DecodeError, match="error decoding image"):
        decode_image(b"definitely not an image")


def test_encode_jpeg_flattens_alpha() -> None:
    rgba = Image.new("RGBA", (20, 10), (0, 0, 0, 0))
    data = encode_jpeg(rgba, quality=90)

    decoded = Image.open(io.BytesIO(data))
    assert decoded.format == "JPEG"
    assert decoded.mode == "RGB"
    assert decoded.size == (20, 10)
