"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from pcdimgpro.PointCloudMat import PointCloudHeader, PointCloudMat, PointXYZRGB, RGB


@pytest.fixture
def grid_cloud():
    """2x2 cloud whose points P00..P11 all differ in position and color."""
    points = [
        PointXYZRGB(x=0.5, y=-1.25, z=3.0, color=RGB(r=1, g=2, b=3)),
        PointXYZRGB(x=1.5, y=-2.25, z=4.0, color=RGB(r=11, g=12, b=13)),
        PointXYZRGB(x=2.5, y=-3.25, z=5.0, color=RGB(r=21, g=22, b=23)),
        PointXYZRGB(x=3.5, y=-4.25, z=6.0, color=RGB(r=31, g=32, b=33)),
    ]
    return PointCloudMat.from_points(points, height=2, width=2,
                                     header=PointCloudHeader(seq=7, stamp=123456, frame_id='camera'))


@pytest.fixture
def random_cloud():
    """Random 4x5 cloud with a fixed seed."""
    return PointCloudMat.random(4, 5, seed=0)


@pytest.fixture
def index_cloud():
    """3x4 cloud with x = linear index, y = row, z = col."""
    height, width = 3, 4
    rows, cols = np.meshgrid(np.arange(height), np.arange(width), indexing='ij')
    xyz = np.stack([rows * width + cols, rows, cols], axis=-1).astype(np.float64)
    rgb = np.zeros((height, width, 3), dtype=np.uint8)
    return PointCloudMat.from_arrays(xyz, rgb)
