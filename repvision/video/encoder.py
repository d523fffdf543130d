"""
Frame-to-video: encode annotated frames to WebM and patch the container's
declared duration to the true source duration.
"""
from __future__ import annotations
import logging
import os
import struct
import tempfile
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from repvision.common.errors import VideoEncodingError

logger = logging.getLogger(__name__)

EBML_INFO_ID = b"\x15\x49\xa9\x66"
EBML_DURATION_ID = b"\x44\x89"
DURATION_SEARCH_WINDOW = 500


def _locate_duration(data: bytes) -> Optional[Tuple[int, int]]:
    """Return (payload offset, payload size) of Segment/Info/Duration, or None."""
    info = data.find(EBML_INFO_ID)
    if info < 0:
        logger.warning("webm: Info element not found")
        return None
    end = min(info + DURATION_SEARCH_WINDOW, len(data))
    dur = data.find(EBML_DURATION_ID, info, end)
    if dur < 0:
        logger.warning("webm: Duration element not found")
        return None
    size_off = dur + 2
    if size_off >= len(data):
        return None
    size_byte = data[size_off]
    # EBML variable-size integer, 1- or 2-byte forms
    if size_byte & 0x80:
        return size_off + 1, size_byte & 0x7F
    if size_byte & 0x40 and size_off + 1 < len(data):
        return size_off + 2, ((size_byte & 0x3F) << 8) | data[size_off + 1]
    return None


def read_webm_duration(data: bytes) -> Optional[float]:
    """Declared duration (in TimecodeScale units, ms by default) or None."""
    loc = _locate_duration(data)
    if loc is None:
        return None
    off, size = loc
    if size == 8 and off + 8 <= len(data):
        return struct.unpack_from(">d", data, off)[0]
    if size == 4 and off + 4 <= len(data):
        return struct.unpack_from(">f", data, off)[0]
    return None


def fix_webm_duration(data: bytes, duration_ms: float) -> bytes:
    """
    Overwrite the Duration payload in place. The byte length never changes;
    if the element cannot be found or has an unexpected width the input is
    returned untouched.
    """
    loc = _locate_duration(data)
    if loc is None:
        return data
    off, size = loc
    if off + size > len(data):
        logger.warning("webm: truncated Duration element")
        return data
    out = bytearray(data)
    if size == 8:
        struct.pack_into(">d", out, off, float(duration_ms))
    elif size == 4:
        struct.pack_into(">f", out, off, float(duration_ms))
    else:
        logger.warning("webm: unexpected Duration size %d", size)
        return data
    logger.info("webm: duration set to %.0fms", duration_ms)
    return bytes(out)


class WebmEncoder:
    """Writes BGR frames through OpenCV's VP8 writer and returns the file bytes."""

    fourcc = "VP80"
    suffix = ".webm"

    def encode(self, frames: Sequence[np.ndarray], fps: float) -> bytes:
        h, w = frames[0].shape[:2]
        fd, path = tempfile.mkstemp(suffix=self.suffix)
        os.close(fd)
        writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*self.fourcc), float(fps), (w, h))
        try:
            if not writer.isOpened():
                raise VideoEncodingError(f"cannot open {self.fourcc} writer")
            for i, frame in enumerate(frames):
                if frame.shape[:2] != (h, w):
                    frame = cv2.resize(frame, (w, h))
                writer.write(frame)
                if i % 30 == 0:
                    logger.debug("encoded frame %d/%d", i, len(frames))
        finally:
            writer.release()
        try:
            with open(path, "rb") as f:
                return f.read()
        finally:
            os.remove(path)


def create_video_from_frames(
    frames: Sequence[np.ndarray],
    source_duration: float,
    encoder: Optional[WebmEncoder] = None,
) -> bytes:
    """
    Encode frames at the measured effective rate (frames / source duration)
    and stamp the container with the real source duration.
    """
    if not frames:
        return b""
    if source_duration <= 0:
        raise VideoEncodingError(f"invalid source duration: {source_duration}")
    encoder = encoder or WebmEncoder()
    effective_fps = len(frames) / source_duration
    logger.info("creating video: %d frames at %.2f fps", len(frames), effective_fps)
    data = encoder.encode(frames, effective_fps)
    duration_ms = len(frames) / effective_fps * 1000.0
    return fix_webm_duration(data, duration_ms)
