"""Periodic camera capture with OpenCV."""

import logging
import threading
from typing import Callable, Optional

import cv2
from PIL import Image

from .utils.media import frame_to_image

logger = logging.getLogger(__name__)


class CameraCapture:
    """
    Grab frames from a camera at a fixed interval on a background thread.

    The most recent frame is kept in ``latest_frame``; an optional callback
    also receives every frame. ``take_latest`` hands a frame out once so the
    same frame is not described twice.

    Args:
        device_index: OpenCV camera index
        capture_interval: Seconds between grabs
    """

    def __init__(self, device_index: int = 0, capture_interval: float = 0.5):
        self._device_index = device_index
        self._capture_interval = capture_interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._capture: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()
        self._latest: Optional[Image.Image] = None
        self._fresh = False

    @property
    def latest_frame(self) -> Optional[Image.Image]:
        with self._lock:
            return self._latest

    def take_latest(self) -> Optional[Image.Image]:
        """Return the newest frame if it has not been taken yet."""
        with self._lock:
            if not self._fresh:
                return None
            self._fresh = False
            return self._latest

    def capture_frame(self) -> Optional[Image.Image]:
        """Grab one frame, or None if the camera returned nothing."""
        if self._capture is None:
            raise RuntimeError("Camera is not open")
        ok, frame = self._capture.read()
        if not ok:
            logger.debug("Camera %d returned no frame", self._device_index)
            return None
        return frame_to_image(frame)

    def start(self, callback: Optional[Callable[[Image.Image], None]] = None) -> None:
        """
        Open the camera and start the capture loop.

        Raises:
            RuntimeError: If the camera cannot be opened
        """
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Capture thread is already running.")
            return

        self._capture = cv2.VideoCapture(self._device_index)
        if not self._capture.isOpened():
            self._capture.release()
            self._capture = None
            raise RuntimeError(f"Cannot open camera {self._device_index}")

        self._stop_event.clear()

        def _capture_loop():
            logger.info(
                "Capture loop started (interval=%.2fs, camera=%d)",
                self._capture_interval,
                self._device_index,
            )
            while not self._stop_event.is_set():
                try:
                    frame = self.capture_frame()
                    if frame is not None:
                        with self._lock:
                            self._latest = frame
                            self._fresh = True
                        if callback is not None:
                            callback(frame)
                except Exception:
                    logger.exception("Error during frame capture")
                self._stop_event.wait(timeout=self._capture_interval)
            logger.info("Capture loop stopped.")

        self._thread = threading.Thread(target=_capture_loop, name="vlmeval-camera", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        if self._capture is not None:
            self._capture.release()
            self._capture = None
