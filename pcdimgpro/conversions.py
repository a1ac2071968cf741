from typing import Optional, Tuple, Union

import numpy as np
import torch

from .cvtypes import CV_8UC3, CV_64FC3, describe_format, type_of
from .ImageMat import mat_ops_for
from .PointCloudMat import POINT_XYZRGB, XYZ_FIELDS, PointCloudHeader, PointCloudMat

# Color images follow the OpenCV channel order
BGR_FIELDS = ('b', 'g', 'r')

def apply_mask(input_image: Union[np.ndarray, torch.Tensor],
               mask: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
    """
    Element-wise input_image * mask, per channel. The mask is cast to the
    image dtype, so a 0/1 mask keeps or zeroes pixels. A single channel
    (H, W) or (H, W, 1) mask on an (H, W, C) image is repeated across the
    channels. Any other shape mismatch raises ValueError.
    """
    ops = mat_ops_for(input_image)
    if (input_image.ndim == 3 and mask.ndim == 3
            and mask.shape[-1] == 1 and input_image.shape[-1] != 1):
        mask = mask[..., 0]
    if mask.ndim == input_image.ndim - 1:
        mask = ops.repeat_channels(mask, input_image.shape[-1])
    if tuple(mask.shape) != tuple(input_image.shape):
        raise ValueError(f"Mask shape {tuple(mask.shape)} does not match image shape {tuple(input_image.shape)}")
    return ops.mul(input_image, ops.cast_like(mask, input_image))

def cloud_to_images(cloud: PointCloudMat) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split a structured cloud into a (H, W, 3) float64 position image of
    x, y, z and a (H, W, 3) uint8 color image in B, G, R order.

    Raises ValueError for a 1x1 (unstructured) cloud or a grid that does
    not fit signed 32-bit sizes.
    """
    cloud.require_structured()
    cloud.require_int32_dims()

    grid = cloud.data()
    position_image = np.empty((cloud.height, cloud.width, 3), dtype=np.float64)
    color_image = np.empty((cloud.height, cloud.width, 3), dtype=np.uint8)
    for ch, name in enumerate(XYZ_FIELDS):
        position_image[..., ch] = grid[name]
    for ch, name in enumerate(BGR_FIELDS):
        color_image[..., ch] = grid[name]
    return position_image, color_image

def images_to_cloud(color_image: Union[np.ndarray, torch.Tensor],
                    position_image: Union[np.ndarray, torch.Tensor],
                    header: Optional[PointCloudHeader] = None) -> PointCloudMat:
    """
    Rebuild a structured cloud from a BGR 8UC3 color image and a 64FC3
    position image of the same size. The result is marked not dense and
    carries header unchanged.
    """
    color_image = mat_ops_for(color_image).to_numpy(color_image)
    position_image = mat_ops_for(position_image).to_numpy(position_image)

    if color_image.shape[:2] != position_image.shape[:2]:
        raise ValueError(
            f"Color image {color_image.shape[:2]} and position image "
            f"{position_image.shape[:2]} must have the same rows and cols")
    if type_of(color_image) != CV_8UC3:
        raise TypeError(f"Color image must be 8UC3, got {describe_format(type_of(color_image))}")
    if type_of(position_image) != CV_64FC3:
        raise TypeError(f"Position image must be 64FC3, got {describe_format(type_of(position_image))}")

    height, width = color_image.shape[:2]
    grid = np.empty((height, width), dtype=POINT_XYZRGB)
    for ch, name in enumerate(XYZ_FIELDS):
        grid[name] = position_image[..., ch]
    for ch, name in enumerate(BGR_FIELDS):
        grid[name] = color_image[..., ch]

    if header is None:
        header = PointCloudHeader()
    return PointCloudMat().build(grid, is_dense=False, header=header)
