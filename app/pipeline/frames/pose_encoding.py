"""Pose log line encoding and parsing.

Two line layouts are supported, selected by ``PoseEncoding``:

``matrix_12``
    ``<ns> r00 r01 r02 t0 r10 r11 r12 t1 r20 r21 r22 t2``, the row-major 3x4
    ``[R|t]`` block of the camera-to-world transform.
``rotvec_7``
    ``<ns> rx ry rz tx ty tz``, the Rodrigues rotation vector followed by the
    translation.

Floats are written with six decimals. Lines starting with ``#`` are comments.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List

import cv2
import numpy as np

from configs.settings import PoseEncoding
from contracts import PoseRecord

COMMENT_PREFIX = "#"


def pose_from_transform(timestamp_ns: int, camera_to_world) -> PoseRecord:
    """Split a 4x4 camera-to-world transform into a PoseRecord.

    Raises:
        ValueError: If the transform is not 4x4 or 3x4, or is not finite
    """
    matrix = np.asarray(camera_to_world, dtype=np.float64)
    if matrix.shape not in ((4, 4), (3, 4)):
        raise ValueError(f"Expected a 4x4 transform, got shape {matrix.shape}")
    if not np.all(np.isfinite(matrix[:3, :4])):
        raise ValueError("Transform contains non-finite values")

    rotation = tuple(tuple(float(v) for v in row) for row in matrix[:3, :3])
    translation = tuple(float(v) for v in matrix[:3, 3])
    return PoseRecord(timestamp_ns=int(timestamp_ns), rotation=rotation, translation=translation)


def rotation_to_vector(rotation) -> np.ndarray:
    rvec, _ = cv2.Rodrigues(np.asarray(rotation, dtype=np.float64))
    return rvec.reshape(3)


def vector_to_rotation(rvec) -> np.ndarray:
    matrix, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
    return matrix


def encode_pose(record: PoseRecord, encoding: PoseEncoding) -> str:
    """Format one pose log line, newline included."""
    if encoding is PoseEncoding.MATRIX_12:
        values: List[float] = []
        for row, t in zip(record.rotation, record.translation):
            values.extend(row)
            values.append(t)
    elif encoding is PoseEncoding.ROTVEC_7:
        values = list(rotation_to_vector(record.rotation)) + list(record.translation)
    else:
        raise ValueError(f"Unsupported pose encoding: {encoding}")

    return f"{record.timestamp_ns:d} " + " ".join(f"{v:.6f}" for v in values) + "\n"


def parse_pose(line: str, encoding: PoseEncoding) -> PoseRecord:
    """Parse one pose log line written by :func:`encode_pose`.

    Raises:
        ValueError: If the line does not have the expected number of fields
    """
    fields = line.split()
    expected = 13 if encoding is PoseEncoding.MATRIX_12 else 7
    if len(fields) != expected:
        raise ValueError(f"Expected {expected} fields for {encoding.value}, got {len(fields)}: {line!r}")

    timestamp_ns = int(fields[0])
    numbers = [float(v) for v in fields[1:]]

    if encoding is PoseEncoding.MATRIX_12:
        block = np.array(numbers).reshape(3, 4)
        rotation = block[:, :3]
        translation = block[:, 3]
    else:
        rotation = vector_to_rotation(numbers[:3])
        translation = np.array(numbers[3:])

    return PoseRecord(
        timestamp_ns=timestamp_ns,
        rotation=tuple(tuple(float(v) for v in row) for row in rotation),
        translation=tuple(float(v) for v in translation),
    )


def iter_pose_lines(lines: Iterable[str], encoding: PoseEncoding) -> Iterator[PoseRecord]:
    """Parse a pose log, skipping blank and comment lines."""
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(COMMENT_PREFIX):
            continue
        yield parse_pose(stripped, encoding)


__all__ = [
    "encode_pose",
    "iter_pose_lines",
    "parse_pose",
    "pose_from_transform",
    "rotation_to_vector",
    "vector_to_rotation",
]
