"""Tests for image and video helpers."""

from unittest.mock import Mock, patch

import cv2
import numpy as np
import pytest
from PIL import Image

from vlmeval.utils.media import frame_to_image, load_image, load_video_frames, resize_image


def _write_video(path, frame_count=12, size=(32, 24)):
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10, size)
    for index in range(frame_count):
        frame = np.full((size[1], size[0], 3), index * 20, dtype=np.uint8)
        writer.write(frame)
    writer.release()
    return path


class TestImages:
    def test_load_local_image_as_rgb(self, tmp_path):
        path = tmp_path / "image.png"
        Image.new("L", (10, 5), 128).save(path)
        image = load_image(path)
        assert image.mode == "RGB"
        assert image.size == (10, 5)

    def test_load_url(self, tmp_path):
        path = tmp_path / "image.png"
        Image.new("RGB", (6, 4), "blue").save(path)
        response = Mock(content=path.read_bytes())

        with patch("vlmeval.utils.media.requests.get", return_value=response) as get:
            image = load_image("https://example.com/bee.jpg")

        get.assert_called_once_with("https://example.com/bee.jpg", timeout=30.0)
        response.raise_for_status.assert_called_once()
        assert image.size == (6, 4)

    def test_resize(self):
        assert resize_image(Image.new("RGB", (10, 20)), (448, 448)).size == (448, 448)

    def test_frame_to_image_swaps_channels(self):
        frame = np.zeros((2, 2, 3), dtype=np.uint8)
        frame[..., 0] = 255  # blue in BGR
        assert frame_to_image(frame).getpixel((0, 0)) == (0, 0, 255)


class TestVideoFrames:
    def test_samples_evenly_spaced_frames(self, tmp_path):
        path = _write_video(tmp_path / "clip.avi")
        frames = load_video_frames(path, max_frames=4, resize=(16, 16))
        assert len(frames) == 4
        assert all(frame.size == (16, 16) for frame in frames)

    def test_missing_video(self, tmp_path):
        with pytest.raises(ValueError, match="Cannot open video"):
            load_video_frames(tmp_path / "missing.mp4")
