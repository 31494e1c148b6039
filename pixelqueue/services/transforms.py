"""
Transform Registry
Maps an action name to an image transform.

Each transform is a pure function of (image, params). New actions are added
with ``TransformRegistry.register``; nothing that dispatches jobs changes.
"""

import io
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

from PIL import Image, UnidentifiedImageError

from pixelqueue.core.exceptions import (
    DecodeError,
    PixelQueueError,
    TransformError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_RESIZE_PARAMS = re.compile(r"(\d+)x(\d+)")


class Transform(ABC):
    """Common capability of every action."""

    name: str = ""

    @abstractmethod
    def apply(self, image: Image.Image, params: str) -> Image.Image:
        """
        Transform an image.

        Raises:
            ValidationError: params malformed or out of range for this image
        """


class GrayscaleTransform(Transform):
    """Per-pixel luminance conversion. Takes no parameters."""

    name = "grayscale"

    def apply(self, image: Image.Image, params: str) -> Image.Image:
        return image.convert("L")


class ResizeTransform(Transform):
    """Resize to exactly ``WxH`` pixels."""

    name = "resize"

    @staticmethod
    def parse(params: str) -> Tuple[int, int]:
        match = _RESIZE_PARAMS.fullmatch((params or "").strip())
        if not match:
            raise ValidationError(
                f"invalid resize parameters '{params}': expected 'widthxheight'"
            )
        width, height = int(match.group(1)), int(match.group(2))
        if width == 0 or height == 0:
            raise ValidationError(
                f"invalid resize parameters '{params}': width and height must be positive"
            )
        return width, height

    def apply(self, image: Image.Image, params: str) -> Image.Image:
        width, height = self.parse(params)
        return image.resize((width, height), Image.Resampling.LANCZOS)


class CropTransform(Transform):
    """Crop to ``x0,y0,x1,y1``; the result's origin is re-based at (0, 0)."""

    name = "crop"

    @staticmethod
    def parse(params: str) -> Tuple[int, int, int, int]:
        parts = (params or "").split(",")
        if len(parts) != 4:
            raise ValidationError(
                f"invalid crop parameters '{params}': expected 'startX,startY,endX,endY'"
            )
        coords = []
        for part in parts:
            try:
                coords.append(int(part.strip()))
            except ValueError:
                raise ValidationError(f"invalid coordinate value in crop parameters: '{part}'")
        return tuple(coords)

    @staticmethod
    def check_bounds(coords: Tuple[int, int, int, int], size: Tuple[int, int]) -> None:
        x0, y0, x1, y1 = coords
        width, height = size
        if not (0 <= x0 < x1 <= width and 0 <= y0 < y1 <= height):
            raise ValidationError(
                f"invalid crop coordinates ({x0},{y0},{x1},{y1}): out of bounds or empty, "
                f"need 0 <= x0 < x1 <= {width} and 0 <= y0 < y1 <= {height}"
            )

    def apply(self, image: Image.Image, params: str) -> Image.Image:
        coords = self.parse(params)
        self.check_bounds(coords, image.size)
        return image.crop(coords)


class TransformRegistry:
    """Action name -> Transform."""

    def __init__(self):
        self._transforms: Dict[str, Transform] = {}

    def register(self, transform: Transform) -> Transform:
        name = self.normalize(transform.name)
        if not name:
            raise ValueError("Transform must define a name")
        if name in self._transforms:
            logger.warning(f"Replacing registered transform: {name}")
        self._transforms[name] = transform
        return transform

    @staticmethod
    def normalize(action: str) -> str:
        return (action or "").strip().lower()

    def names(self) -> List[str]:
        return sorted(self._transforms)

    def __contains__(self, action: str) -> bool:
        return self.normalize(action) in self._transforms

    def get(self, action: str) -> Transform:
        """
        Look up a transform.

        Raises:
            ValidationError: unknown action
        """
        transform = self._transforms.get(self.normalize(action))
        if transform is None:
            raise ValidationError(
                f"Invalid action '{action}'. Allowed: {', '.join(self.names())}"
            )
        return transform

    def apply(self, action: str, image: Image.Image, params: str = "") -> Image.Image:
        """
        Look up and run a transform.

        Library failures on a decodable image become TransformError so the
        caller sees only the documented taxonomy.
        """
        transform = self.get(action)
        try:
            return transform.apply(image, params or "")
        except PixelQueueError:
            raise
        except Exception as e:
            raise TransformError(
                f"error during image processing ({transform.name} with params '{params}'): {e}"
            ) from e


def default_registry() -> TransformRegistry:
    """Registry with the built-in actions."""
    registry = TransformRegistry()
    for transform in (GrayscaleTransform(), ResizeTransform(), CropTransform()):
        registry.register(transform)
    return registry


# --- Codec helpers shared by the worker and the synchronous endpoint ---

def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes fully, raising DecodeError on any failure."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        return image
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"error decoding image: {e}") from e


def encode_jpeg(image: Image.Image, quality: int = 90) -> bytes:
    """Encode to JPEG, flattening modes JPEG cannot store."""
    try:
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=quality)
        return buffer.getvalue()
    except (OSError, ValueError) as e:
        raise TransformError(f"error encoding image: {e}") from e
