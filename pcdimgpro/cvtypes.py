import numpy as np

# OpenCV 4 packs a mat type as depth in the low 3 bits and (channels - 1) above them.
# The layout is fixed here, whatever cv2 release is installed.
CV_CN_SHIFT = 3
CV_CN_MAX = 512
CV_DEPTH_MASK = (1 << CV_CN_SHIFT) - 1
CV_MAT_CN_MASK = (CV_CN_MAX - 1) << CV_CN_SHIFT

CV_8U = 0
CV_8S = 1
CV_16U = 2
CV_16S = 3
CV_32S = 4
CV_32F = 5
CV_64F = 6
CV_USRTYPE1 = 7

DEPTH_LABELS = {
    CV_8U: '8U',
    CV_8S: '8S',
    CV_16U: '16U',
    CV_16S: '16S',
    CV_32S: '32S',
    CV_32F: '32F',
    CV_64F: '64F',
}

NUMPY_DEPTHS = {
    np.dtype(np.uint8): CV_8U,
    np.dtype(np.int8): CV_8S,
    np.dtype(np.uint16): CV_16U,
    np.dtype(np.int16): CV_16S,
    np.dtype(np.int32): CV_32S,
    np.dtype(np.float32): CV_32F,
    np.dtype(np.float64): CV_64F,
}

def mat_depth(cv_type: int) -> int:
    return cv_type & CV_DEPTH_MASK

def mat_channels(cv_type: int) -> int:
    return ((cv_type & CV_MAT_CN_MASK) >> CV_CN_SHIFT) + 1

def make_type(depth: int, channels: int = 1) -> int:
    if not 1 <= channels <= CV_CN_MAX:
        raise ValueError(f"Channel count must be in [1, {CV_CN_MAX}], got {channels}")
    return (depth & CV_DEPTH_MASK) + ((channels - 1) << CV_CN_SHIFT)

CV_8UC1 = make_type(CV_8U, 1)
CV_8UC3 = make_type(CV_8U, 3)
CV_32FC3 = make_type(CV_32F, 3)
CV_64FC3 = make_type(CV_64F, 3)

def depth_of(dtype) -> int:
    dtype = np.dtype(dtype)
    if dtype not in NUMPY_DEPTHS:
        raise TypeError(f"No OpenCV depth for dtype {dtype}")
    return NUMPY_DEPTHS[dtype]

def type_of(img: np.ndarray) -> int:
    """
    OpenCV type code of a (H, W) or (H, W, C) array.
    """
    if img.ndim == 2:
        channels = 1
    elif img.ndim == 3:
        channels = img.shape[2]
    else:
        raise ValueError(f"Image must be 2D (H, W) or 3D (H, W, C). Got shape: {img.shape}")
    return make_type(depth_of(img.dtype), channels)

def describe_format(cv_type: int) -> str:
    """
    Human readable label of an OpenCV type code, e.g. 16 (CV_8UC3) -> "8UC3".
    Depths outside the seven standard ones are labelled "User".
    """
    label = DEPTH_LABELS.get(mat_depth(cv_type), 'User')
    return f'{label}C{mat_channels(cv_type)}'
