import uuid

import numpy as np
import open3d as o3d

from .PointCloudMat import PointCloudMat

class PointCloudBase:
    """
    Thin wrapper around o3d.geometry.PointCloud. open3d keeps no grid, so the
    height and width have to be supplied again when converting back.
    """
    def __init__(self, xyz: np.ndarray = None, rgb: np.ndarray = None):
        self.pcd: o3d.geometry.PointCloud = None

        if type(xyz) is o3d.geometry.PointCloud:
            self.pcd = xyz
        else:
            self.pcd = o3d.geometry.PointCloud()
            base_check = lambda arr: arr is not None and len(arr) > 0 and np.prod(arr.shape) > 0
            if base_check(xyz): self.set_points(xyz)
            if base_check(rgb): self.set_rgb(rgb)

        self.has_colors = self.pcd.has_colors
        self.has_points = self.pcd.has_points
        self.uuid = uuid.uuid4()

    @staticmethod
    def from_mat(cloud: PointCloudMat) -> 'PointCloudBase':
        return PointCloudBase(cloud.xyz(), cloud.rgb() / 255.0)

    def to_mat(self, height: int, width: int, **kwargs) -> PointCloudMat:
        xyz = self.get_points()
        if self.has_rgb():
            rgb = np.clip(np.round(self.get_colors() * 255.0), 0, 255).astype(np.uint8)
        else:
            rgb = np.zeros_like(xyz, dtype=np.uint8)
        return PointCloudMat.from_arrays(xyz, rgb, height, width, **kwargs)

    def size(self):
        return len(self.get_points())

    def has_rgb(self) -> bool:
        return self.has_points() and self.size() == len(self.pcd.colors)

    def set_rgb(self, colors: np.ndarray):
        assert colors.shape[1] == 3, 'colors shape must be (n,3)'
        self.pcd.colors = o3d.utility.Vector3dVector(colors)
        return self

    def set_points(self, points: np.ndarray):
        assert points.shape[1] == 3, 'points shape must be (n,3)'
        self.pcd.points = o3d.utility.Vector3dVector(points)
        return self

    def get_points(self):
        return np.asarray(self.pcd.points)

    def get_colors(self):
        return np.asarray(self.pcd.colors)
