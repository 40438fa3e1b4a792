"""Per-frame transform: orientation, resize, encode, pose and intrinsics.

The transform is stateless per frame. Every failure surfaces as
``FrameDecodeError`` so the caller can drop the frame and keep recording.
"""

from __future__ import annotations

import time
from typing import Tuple

import cv2
import numpy as np

from app.pipeline.frames.pose_encoding import pose_from_transform
from configs.settings import CaptureConfig, ImageFormat, OutputOrientation, SessionFormatConfig
from contracts import FrameEvent, IntrinsicsRecord, TransformedFrame
from exceptions import FrameDecodeError
from log_config.logger import log_performance

_ROTATE_CODES = {
    OutputOrientation.ROTATE_90_CW: cv2.ROTATE_90_CLOCKWISE,
    OutputOrientation.ROTATE_180: cv2.ROTATE_180,
    OutputOrientation.ROTATE_90_CCW: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def decode_to_bgr(image, pixel_format: str) -> np.ndarray:
    """Convert a raw sensor buffer into an 8-bit, 3-channel BGR image.

    Raises:
        ValueError: If the buffer does not match the declared pixel format
        cv2.error: If OpenCV cannot convert the buffer
    """
    if not isinstance(image, np.ndarray) or image.size == 0:
        raise ValueError("Image buffer is empty or not an array")
    if image.dtype != np.uint8:
        raise ValueError(f"Expected uint8 pixels, got {image.dtype}")

    fmt = pixel_format.upper()
    if fmt in ("BGR", "BGR3", "RGB", "RGB24"):
        if image.ndim != 3 or image.shape[2] != 3:
            raise ValueError(f"{fmt} buffer must be HxWx3, got {image.shape}")
        return image if fmt.startswith("BGR") else cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    if fmt == "BGRA":
        if image.ndim != 3 or image.shape[2] != 4:
            raise ValueError(f"BGRA buffer must be HxWx4, got {image.shape}")
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if fmt in ("GRAY", "GRAY8"):
        if image.ndim != 2:
            raise ValueError(f"GRAY buffer must be HxW, got {image.shape}")
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if fmt == "NV12":
        # Luma plane stacked on the interleaved half-height chroma plane
        if image.ndim != 2 or image.shape[0] % 3 != 0 or image.shape[1] % 2 != 0:
            raise ValueError(f"NV12 buffer must be (3H/2)xW, got {image.shape}")
        return cv2.cvtColor(image, cv2.COLOR_YUV2BGR_NV12)
    raise ValueError(f"Unsupported pixel format: {pixel_format}")


def rotate_intrinsics(
    fx: float,
    fy: float,
    cx: float,
    cy: float,
    width: int,
    height: int,
    orientation: OutputOrientation,
) -> Tuple[float, float, float, float, int, int]:
    """Express intrinsics in the pixel frame of the rotated image.

    A 90 degree rotation swaps the focal lengths and the image axes, and
    remaps the principal point; 180 degrees mirrors the principal point.

    Returns:
        (fx, fy, cx, cy, width, height) after rotation
    """
    if orientation is OutputOrientation.ROTATE_90_CW:
        return fy, fx, height - cy, cx, height, width
    if orientation is OutputOrientation.ROTATE_90_CCW:
        return fy, fx, cy, width - cx, height, width
    if orientation is OutputOrientation.ROTATE_180:
        return fx, fy, width - cx, height - cy, width, height
    return fx, fy, cx, cy, width, height


def output_size(width: int, height: int, target_long_edge: int) -> Tuple[int, int]:
    """Size with the longer edge equal to ``target_long_edge``, aspect preserved."""
    scale = target_long_edge / float(max(width, height))
    return max(1, int(round(width * scale))), max(1, int(round(height * scale)))


class FrameTransformer:
    """Turns an accepted FrameEvent into encoded image, pose and intrinsics."""

    def __init__(self, capture: CaptureConfig, session_format: SessionFormatConfig):
        self._capture = capture
        self._format = session_format

        if session_format.image_format is ImageFormat.JPEG:
            self._encode_params = [cv2.IMWRITE_JPEG_QUALITY, int(capture.jpeg_quality)]
        else:
            self._encode_params = [cv2.IMWRITE_PNG_COMPRESSION, int(capture.png_compression)]

    def transform(self, event: FrameEvent) -> TransformedFrame:
        """Run the full transform for one frame.

        Raises:
            FrameDecodeError: On any decode, resize, encode or geometry failure
        """
        timestamp_ns = event.timestamp_ns
        started = time.perf_counter()
        try:
            image = decode_to_bgr(event.image, event.pixel_format)

            orientation = self._format.output_orientation
            if orientation in _ROTATE_CODES:
                image = cv2.rotate(image, _ROTATE_CODES[orientation])

            height, width = image.shape[:2]
            out_w, out_h = output_size(width, height, self._capture.target_long_edge_px)
            if (out_w, out_h) != (width, height):
                interpolation = cv2.INTER_AREA if out_w < width else cv2.INTER_LINEAR
                image = cv2.resize(image, (out_w, out_h), interpolation=interpolation)

            ok, encoded = cv2.imencode(self._format.image_format.extension, image, self._encode_params)
            if not ok:
                raise ValueError(f"{self._format.image_format.value} encoder rejected the image")

            pose = pose_from_transform(timestamp_ns, event.camera_to_world)
            intrinsics = self._scale_intrinsics(event, out_w, out_h)
        except (ValueError, TypeError, cv2.error) as e:
            raise FrameDecodeError(f"Frame {timestamp_ns} dropped: {e}", timestamp_ns=timestamp_ns) from e

        log_performance(f"transform frame {timestamp_ns}", (time.perf_counter() - started) * 1000.0)
        return TransformedFrame(
            timestamp_ns=timestamp_ns,
            pose=pose,
            image_bytes=encoded.tobytes(),
            intrinsics=intrinsics,
            width=out_w,
            height=out_h,
        )

    def _scale_intrinsics(self, event: FrameEvent, out_w: int, out_h: int) -> IntrinsicsRecord:
        k = np.asarray(event.intrinsics, dtype=np.float64)
        if k.shape != (3, 3):
            raise ValueError(f"Expected 3x3 intrinsics, got shape {k.shape}")
        if event.native_width <= 0 or event.native_height <= 0:
            raise ValueError(f"Invalid native size {event.native_width}x{event.native_height}")

        fx, fy, cx, cy, rot_w, rot_h = rotate_intrinsics(
            float(k[0, 0]),
            float(k[1, 1]),
            float(k[0, 2]),
            float(k[1, 2]),
            event.native_width,
            event.native_height,
            self._format.output_orientation,
        )
        scale_x = out_w / float(rot_w)
        scale_y = out_h / float(rot_h)
        return IntrinsicsRecord(
            fx=fx * scale_x,
            fy=fy * scale_y,
            cx=cx * scale_x,
            cy=cy * scale_y,
            width=out_w,
            height=out_h,
        )


__all__ = ["FrameTransformer", "decode_to_bgr", "output_size", "rotate_intrinsics"]
