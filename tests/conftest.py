"""Shared fixtures: synthetic RGBA frames and a controllable clock."""

import cv2
import numpy as np
import pytest


def make_disc(size=64, center=None, radius=None, color=(200, 80, 40)):
    """Opaque disc on a fully transparent background."""
    center = center if center is not None else (size // 2, size // 2)
    radius = radius if radius is not None else size // 4
    frame = np.zeros((size, size, 4), dtype=np.uint8)
    cv2.circle(frame, (int(center[0]), int(center[1])), int(radius), (*color, 255), thickness=-1)
    return frame


def make_solid(size=16, color=(120, 60, 200), alpha=255):
    frame = np.empty((size, size, 4), dtype=np.uint8)
    frame[..., :3] = color
    frame[..., 3] = alpha
    return frame


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


@pytest.fixture
def disc():
    return make_disc


@pytest.fixture
def solid():
    return make_solid


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ring_frames():
    """Twelve small discs, one colour per frame."""
    return [make_disc(size=16, radius=5, color=(20 * i, 100, 200 - 10 * i)) for i in range(12)]
