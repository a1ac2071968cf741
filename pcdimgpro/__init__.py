from . import cvtypes, conversions, generator, processors
from .cvtypes import describe_format
from .conversions import apply_mask, cloud_to_images, images_to_cloud
from .ImageMat import ColorType, ImageMat, ImageMatInfo
from .PointCloudMat import (POINT_XYZRGB, RGB, PointCloudHeader, PointCloudMat,
                            PointCloudMatInfo, PointXYZRGB, pack_rgb, unpack_rgb)
