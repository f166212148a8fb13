import os
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .constants import (
    DOCUMENT_QUALITY,
    DOCUMENT_TARGET_WIDTH,
    THUMBNAIL_QUALITY,
    THUMBNAIL_TARGET_HEIGHT,
    THUMBNAIL_TARGET_WIDTH,
)
from .errors import InvalidArgument, IOFailure


def _array_to_image(arr):
    if getattr(arr, "ndim", None) == 4:
        arr = arr[0]
    if getattr(arr, "ndim", None) == 2:
        arr = arr[:, :, None]
    if getattr(arr, "ndim", None) != 3:
        raise InvalidArgument("image array must be HW, HWC or BHWC")

    if arr.shape[-1] == 1:
        arr = np.repeat(arr, 3, axis=2)
    elif arr.shape[-1] > 3:
        arr = arr[:, :, :3]

    if arr.dtype != np.uint8:
        # Camera frames arrive as floats in [0, 1].
        arr = np.clip(arr.astype(np.float32), 0.0, 1.0)
        arr = (arr * 255.0).round().astype(np.uint8)
    return Image.fromarray(np.ascontiguousarray(arr))


def load_image(source):
    """Open ``source`` (a path or an HWC array) as an RGB image, orientation applied."""
    if source is None:
        raise InvalidArgument("image is required")
    if isinstance(source, np.ndarray):
        img = _array_to_image(source)
    else:
        path = Path(source)
        if not path.is_file():
            raise InvalidArgument(f"image not found: {path}")
        try:
            with Image.open(path) as opened:
                img = ImageOps.exif_transpose(opened)
                img.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise InvalidArgument(f"unreadable image {path}: {exc}") from exc

    if img.mode != "RGB":
        img = img.convert("RGB")
    w, h = img.size
    if w <= 0 or h <= 0:
        raise InvalidArgument("invalid image size")
    return img


def _save_jpeg(img, dest_path, quality):
    parent = os.path.dirname(str(dest_path))
    try:
        if parent:
            os.makedirs(parent, exist_ok=True)
        img.save(dest_path, format="JPEG", quality=int(quality), optimize=True)
    except OSError as exc:
        raise IOFailure(f"cannot write image {dest_path}: {exc}") from exc
    return str(dest_path)


class PillowImageProcessor:
    """Resize/compress captured pages into JPEG blobs."""

    def normalize(self, source, dest_path, target_width=DOCUMENT_TARGET_WIDTH, quality=DOCUMENT_QUALITY):
        img = load_image(source)
        w, h = img.size
        if w != target_width:
            new_h = max(1, int(round(h * (target_width / float(w)))))
            img = img.resize((target_width, new_h), Image.Resampling.LANCZOS)
        return _save_jpeg(img, dest_path, quality)

    def thumbnail(
        self,
        source,
        dest_path,
        target_width=THUMBNAIL_TARGET_WIDTH,
        target_height=THUMBNAIL_TARGET_HEIGHT,
        quality=THUMBNAIL_QUALITY,
    ):
        img = load_image(source)
        img = img.resize((target_width, target_height), Image.Resampling.LANCZOS)
        return _save_jpeg(img, dest_path, quality)

    def enhance(self, source, dest_path, grayscale=False, cutoff=1, quality=DOCUMENT_QUALITY):
        """Make a photo read more like a flatbed scan: stretch contrast, optionally drop colour."""
        img = load_image(source)
        if grayscale:
            img = ImageOps.grayscale(img)
        img = ImageOps.autocontrast(img, cutoff=cutoff)
        if img.mode != "RGB":
            img = img.convert("RGB")
        return _save_jpeg(img, dest_path, quality)
