# Standard Library Imports
from typing import List, Optional, Tuple
import uuid

# Third-Party Library Imports
import numpy as np
from pydantic import BaseModel, Field

INT32_MAX = int(np.iinfo(np.int32).max)

# One structured point: float64 position and 8-bit color
POINT_XYZRGB = np.dtype([
    ('x', np.float64), ('y', np.float64), ('z', np.float64),
    ('r', np.uint8), ('g', np.uint8), ('b', np.uint8),
])
XYZ_FIELDS = ('x', 'y', 'z')
RGB_FIELDS = ('r', 'g', 'b')

def pack_rgb(rgb: np.ndarray) -> np.ndarray:
    """
    Fold (..., 3) uint8 r, g, b into the point-cloud-library float32 rgb field:
    the bits of (r << 16) | (g << 8) | b reinterpreted as float32.
    """
    rgb = np.asarray(rgb)
    if rgb.shape[-1] != 3:
        raise ValueError(f"rgb must have shape (..., 3). Got shape: {rgb.shape}")
    rgb = rgb.astype(np.uint32)
    packed = (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]
    return np.ascontiguousarray(packed, dtype=np.uint32).view(np.float32)

def unpack_rgb(packed: np.ndarray) -> np.ndarray:
    """Inverse of pack_rgb, returns (..., 3) uint8 r, g, b."""
    packed = np.ascontiguousarray(packed)
    if packed.dtype != np.float32:
        raise TypeError(f"Packed rgb must be float32. Got {packed.dtype}")
    bits = packed.view(np.uint32)
    return np.stack([(bits >> 16) & 0xFF, (bits >> 8) & 0xFF, bits & 0xFF], axis=-1).astype(np.uint8)

class RGB(BaseModel):
    r: int = Field(0, ge=0, le=255)
    g: int = Field(0, ge=0, le=255)
    b: int = Field(0, ge=0, le=255)

    def to_bgr(self) -> Tuple[int, int, int]:
        return (self.b, self.g, self.r)

    @staticmethod
    def from_bgr(bgr) -> 'RGB':
        b, g, r = (int(c) for c in bgr)
        return RGB(r=r, g=g, b=b)

class PointXYZRGB(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    color: RGB = Field(default_factory=RGB)

    def to_record(self) -> tuple:
        return (self.x, self.y, self.z, self.color.r, self.color.g, self.color.b)

    @staticmethod
    def from_record(rec) -> 'PointXYZRGB':
        return PointXYZRGB(x=float(rec['x']), y=float(rec['y']), z=float(rec['z']),
                           color=RGB(r=int(rec['r']), g=int(rec['g']), b=int(rec['b'])))

class PointCloudHeader(BaseModel):
    seq: int = 0
    stamp: int = 0  # microseconds
    frame_id: str = ''

class PointCloudMatInfo(BaseModel):
    type: Optional[str] = None
    _dtype: Optional[np.dtype] = None
    device: str = 'cpu'
    height: int = 0
    width: int = 0
    N: int = 0  # Number of points
    is_dense: bool = True
    header: PointCloudHeader = Field(default_factory=PointCloudHeader)
    uuid: str = ''

    def model_post_init(self, context):
        self.uuid = f'{self.__class__.__name__}:{uuid.uuid4()}'
        return super().model_post_init(context)

    def build(self, pcd_data: np.ndarray, height: Optional[int] = None, width: Optional[int] = None):
        if not isinstance(pcd_data, np.ndarray):
            raise TypeError(f"pcd_data must be np.ndarray, got {type(pcd_data)}")
        if pcd_data.dtype != POINT_XYZRGB:
            raise TypeError(f"Point cloud data must have dtype {POINT_XYZRGB}. Got {pcd_data.dtype}")

        if pcd_data.ndim == 2:
            height = pcd_data.shape[0] if height is None else height
            width = pcd_data.shape[1] if width is None else width
            if (height, width) != pcd_data.shape:
                raise ValueError(f"Grid {height}x{width} does not match data shape {pcd_data.shape}")
        elif pcd_data.ndim == 1:
            if height is None or width is None:
                raise ValueError("height and width are required for flat (N,) point data")
        else:
            raise ValueError(f"Point cloud data must be (N,) or (H, W). Got shape: {pcd_data.shape}")

        if height < 0 or width < 0:
            raise ValueError(f"Grid size must be non-negative. Got {height}x{width}")
        if height * width != pcd_data.size:
            raise ValueError(f"Grid {height}x{width} does not match point count {pcd_data.size}")

        self.type = type(pcd_data).__name__
        self._dtype = pcd_data.dtype
        self.height = int(height)
        self.width = int(width)
        self.N = int(pcd_data.size)
        return self

    def is_structured(self) -> bool:
        return self.height != 1 or self.width != 1

class PointCloudMat(BaseModel):
    info: Optional[PointCloudMatInfo] = None
    _pcd_data: np.ndarray = None

    @staticmethod
    def zeros(height: int, width: int) -> 'PointCloudMat':
        return PointCloudMat().build(np.zeros((height, width), dtype=POINT_XYZRGB))

    @staticmethod
    def random(height: int, width: int, seed: Optional[int] = None) -> 'PointCloudMat':
        rng = np.random.default_rng(seed)
        xyz = rng.standard_normal((height, width, 3))
        rgb = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
        return PointCloudMat.from_arrays(xyz, rgb)

    @staticmethod
    def from_arrays(xyz: np.ndarray, rgb: np.ndarray,
                    height: Optional[int] = None, width: Optional[int] = None,
                    **kwargs) -> 'PointCloudMat':
        """
        Build from positions and colors, either flat (N, 3) with height/width
        given, or gridded (H, W, 3).
        """
        xyz = np.asarray(xyz)
        rgb = np.asarray(rgb)
        if xyz.shape != rgb.shape or xyz.shape[-1] != 3:
            raise ValueError(f"xyz and rgb must share a (..., 3) shape. Got {xyz.shape} and {rgb.shape}")
        if xyz.ndim == 3:
            height, width = xyz.shape[:2]
        elif xyz.ndim != 2:
            raise ValueError(f"xyz must be (N, 3) or (H, W, 3). Got shape: {xyz.shape}")
        if rgb.dtype != np.uint8:
            if rgb.min(initial=0) < 0 or rgb.max(initial=0) > 255:
                raise ValueError("rgb values must be in [0, 255]")
            rgb = rgb.astype(np.uint8)

        data = np.empty(xyz.shape[:-1], dtype=POINT_XYZRGB)
        for i, name in enumerate(XYZ_FIELDS):
            data[name] = xyz[..., i]
        for i, name in enumerate(RGB_FIELDS):
            data[name] = rgb[..., i]
        return PointCloudMat().build(data, height, width, **kwargs)

    @staticmethod
    def from_points(points: List[PointXYZRGB], height: int, width: int, **kwargs) -> 'PointCloudMat':
        data = np.array([p.to_record() for p in points], dtype=POINT_XYZRGB)
        return PointCloudMat().build(data, height, width, **kwargs)

    @staticmethod
    def from_packed(xyzrgb: np.ndarray, height: Optional[int] = None, width: Optional[int] = None,
                    **kwargs) -> 'PointCloudMat':
        """
        Build from the float32 [x, y, z, rgb] layout used by point-cloud-library
        XYZRGB clouds, (N, 4) or (H, W, 4).
        """
        xyzrgb = np.asarray(xyzrgb)
        if xyzrgb.shape[-1] != 4:
            raise ValueError(f"Packed data must have shape (..., 4). Got shape: {xyzrgb.shape}")
        if xyzrgb.dtype != np.float32:
            raise TypeError(f"Packed data must be float32. Got {xyzrgb.dtype}")
        return PointCloudMat.from_arrays(xyzrgb[..., :3].astype(np.float64),
                                         unpack_rgb(xyzrgb[..., 3]),
                                         height, width, **kwargs)

    @staticmethod
    def from_o3d(pcd, height: int, width: int, **kwargs) -> 'PointCloudMat':
        from .PointCloud import PointCloudBase
        return PointCloudBase(pcd).to_mat(height, width, **kwargs)

    def build(self, pcd_data: np.ndarray, height: Optional[int] = None, width: Optional[int] = None,
              is_dense: bool = True, header: Optional[PointCloudHeader] = None,
              info: Optional[PointCloudMatInfo] = None):
        if info is None:
            info = PointCloudMatInfo(is_dense=is_dense, header=header or PointCloudHeader()
                                     ).build(pcd_data, height, width)
        self.info = info
        self._pcd_data = pcd_data.reshape(info.height, info.width)
        return self

    def copy(self) -> 'PointCloudMat':
        return PointCloudMat().build(self._pcd_data.copy(), is_dense=self.is_dense,
                                     header=self.header.model_copy())

    def data(self) -> np.ndarray:
        """The (height, width) grid of POINT_XYZRGB records."""
        return self._pcd_data

    def points(self) -> np.ndarray:
        """Flat row-major view, point (row, col) at index row * width + col."""
        return self._pcd_data.reshape(-1)

    @property
    def height(self) -> int:
        return self.info.height

    @property
    def width(self) -> int:
        return self.info.width

    @property
    def is_dense(self) -> bool:
        return self.info.is_dense

    @property
    def header(self) -> PointCloudHeader:
        return self.info.header

    def size(self) -> int:
        return self.info.N

    def xyz(self) -> np.ndarray:
        pts = self.points()
        return np.stack([pts[name] for name in XYZ_FIELDS], axis=-1)

    def rgb(self) -> np.ndarray:
        pts = self.points()
        return np.stack([pts[name] for name in RGB_FIELDS], axis=-1)

    def to_packed(self) -> np.ndarray:
        """(N, 4) float32 [x, y, z, rgb]. Positions lose float64 precision."""
        return np.concatenate([self.xyz().astype(np.float32), pack_rgb(self.rgb())[:, None]], axis=1)

    def to_o3d(self):
        from .PointCloud import PointCloudBase
        return PointCloudBase.from_mat(self).pcd

    def point(self, row: int, col: int) -> PointXYZRGB:
        if not (0 <= row < self.height and 0 <= col < self.width):
            raise IndexError(f"({row}, {col}) is outside the {self.height}x{self.width} grid")
        return PointXYZRGB.from_record(self._pcd_data[row, col])

    def is_structured(self) -> bool:
        return self.info.is_structured()

    def require_structured(self):
        if not self.is_structured():
            raise ValueError("Point cloud must be structured, got a 1x1 grid")

    def require_int32_dims(self):
        if not (self.height < INT32_MAX and self.width < INT32_MAX):
            raise ValueError(f"Grid {self.height}x{self.width} does not fit a signed 32-bit size")

    def __eq__(self, other):
        if not isinstance(other, PointCloudMat):
            return NotImplemented
        return (self.height == other.height and self.width == other.width
                and self._pcd_data.tobytes() == other._pcd_data.tobytes())
