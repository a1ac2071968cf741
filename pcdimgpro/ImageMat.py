# Standard Library Imports
import enum
from typing import Optional, Union
import uuid

# Third-Party Library Imports
import cv2
import numpy as np
from pydantic import BaseModel
import torch

from .cvtypes import NUMPY_DEPTHS, describe_format, make_type

class ColorType(str, enum.Enum):
    BGR       = 'BGR'        # (H, W, 3) uint8, OpenCV channel order
    RGB       = 'RGB'        # (H, W, 3) uint8
    GRAYSCALE = 'grayscale'  # (H, W) single channel, masks included
    XYZ       = 'XYZ'        # (H, W, 3) float64 per-pixel position

    def channels(self) -> int:
        return 1 if self == ColorType.GRAYSCALE else 3

TORCH_TO_NUMPY_DTYPES = {
    torch.uint8: np.uint8,
    torch.int8: np.int8,
    torch.int16: np.int16,
    torch.int32: np.int32,
    torch.float32: np.float32,
    torch.float64: np.float64,
}

class MatOps:
    def mul(self, a, b): raise NotImplementedError()
    def copy_mat(self, x): raise NotImplementedError()
    def to_numpy(self, x) -> np.ndarray: raise NotImplementedError()
    def cast_like(self, x, ref): raise NotImplementedError()
    def repeat_channels(self, x, channels): raise NotImplementedError()

class NumpyMatOps(MatOps):
    def mul(self, a, b):
        # cv2.multiply saturates like cv::Mat::mul, and drops a trailing 1-channel axis
        if a.dtype in NUMPY_DEPTHS:
            return cv2.multiply(a, b).reshape(a.shape)
        return np.multiply(a, b)
    def copy_mat(self, x): return x.copy()
    def to_numpy(self, x) -> np.ndarray: return x
    def cast_like(self, x, ref): return np.asarray(x).astype(ref.dtype, copy=False)
    def repeat_channels(self, x, channels): return np.repeat(x[..., None], channels, axis=-1)

class TorchMatOps(MatOps):
    def mul(self, a, b):
        if a.dtype.is_floating_point or a.dtype == torch.bool:
            return torch.mul(a, b)
        # saturate integer products like cv2.multiply
        info = torch.iinfo(a.dtype)
        wide = torch.mul(a.to(torch.int64), b.to(torch.int64))
        return wide.clamp(info.min, info.max).to(a.dtype)
    def copy_mat(self, x): return x.clone()
    def to_numpy(self, x) -> np.ndarray: return x.detach().cpu().numpy()
    def cast_like(self, x, ref):
        if not torch.is_tensor(x):
            x = torch.as_tensor(x)
        return x.to(device=ref.device, dtype=ref.dtype)
    def repeat_channels(self, x, channels): return x.unsqueeze(-1).expand(*x.shape, channels)

def mat_ops_for(x) -> MatOps:
    if isinstance(x, np.ndarray):
        return NumpyMatOps()
    if torch.is_tensor(x):
        return TorchMatOps()
    raise TypeError(f"Expected np.ndarray or torch.Tensor, got {type(x)}")

class ImageMatInfo(BaseModel):
    type: Optional[str] = None
    _dtype: Optional[Union[np.dtype, torch.dtype]] = None
    device: str = ''
    color_type: Optional[ColorType] = None
    H: int = 0
    W: int = 0
    C: int = 0
    cv_type: int = -1
    uuid: str = ''

    def model_post_init(self, context):
        self.uuid = f'{self.__class__.__name__}:{uuid.uuid4()}'
        return super().model_post_init(context)

    def build(self, img_data: Union[np.ndarray, torch.Tensor], color_type: Union[str, ColorType]):
        color_type = ColorType(color_type)
        self.type = type(img_data).__name__

        if isinstance(img_data, np.ndarray):
            self._dtype = img_data.dtype
            self.device = 'cpu'
            np_dtype = img_data.dtype
        elif isinstance(img_data, torch.Tensor):
            self._dtype = img_data.dtype
            self.device = str(img_data.device)
            np_dtype = TORCH_TO_NUMPY_DTYPES.get(img_data.dtype)
        else:
            raise TypeError(f"img_data must be np.ndarray or torch.Tensor, got {type(img_data)}")

        if img_data.ndim == 2:
            H, W, C = *img_data.shape, 1
        elif img_data.ndim == 3:
            H, W, C = img_data.shape
        else:
            raise ValueError(f"Image data must be 2D (H, W) or 3D (H, W, C). Got shape: {tuple(img_data.shape)}")

        if C != color_type.channels():
            raise ValueError(
                f"Color type '{color_type.value}' expects {color_type.channels()} channels, "
                f"but got {C}. Full shape: {tuple(img_data.shape)}"
            )

        self.color_type = color_type
        self.H, self.W, self.C = int(H), int(W), int(C)
        depth = NUMPY_DEPTHS.get(np.dtype(np_dtype)) if np_dtype is not None else None
        self.cv_type = make_type(depth, C) if depth is not None else -1
        return self

    def describe(self) -> str:
        return describe_format(self.cv_type) if self.cv_type >= 0 else f'{self._dtype}C{self.C}'

class ImageMat(BaseModel):
    color_type: ColorType
    info: Optional[ImageMatInfo] = None
    _img_data: Union[np.ndarray, torch.Tensor] = None

    def build(self, img_data: Union[np.ndarray, torch.Tensor], info: Optional[ImageMatInfo] = None):
        self.info = info or ImageMatInfo().build(img_data, self.color_type)
        self._img_data = img_data
        return self

    def copy(self) -> 'ImageMat':
        return ImageMat(color_type=self.color_type).build(mat_ops_for(self._img_data).copy_mat(self._img_data))

    def data(self) -> Union[np.ndarray, torch.Tensor]:
        return self._img_data

    def to_numpy(self) -> np.ndarray:
        return mat_ops_for(self._img_data).to_numpy(self._img_data)

    # --- Type and Shape Requirement Methods ---
    def is_ndarray(self):
        return isinstance(self._img_data, np.ndarray)

    def is_torch_tensor(self):
        return isinstance(self._img_data, torch.Tensor)

    def require_ndarray(self):
        if not isinstance(self._img_data, np.ndarray):
            raise TypeError(f"Expected np.ndarray, got {type(self._img_data)}")

    def require_color_type(self, color_type: ColorType):
        if self.color_type != color_type:
            raise TypeError(f"Expected color type {color_type.value}, got {self.color_type.value}")

    def require_cv_type(self, cv_type: int):
        if self.info.cv_type != cv_type:
            raise TypeError(f"Expected {describe_format(cv_type)} image, got {self.info.describe()}")

    def require_same_size(self, other: 'ImageMat'):
        if (self.info.H, self.info.W) != (other.info.H, other.info.W):
            raise ValueError(
                f"Image size mismatch: {self.info.H}x{self.info.W} vs {other.info.H}x{other.info.W}")
