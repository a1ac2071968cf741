from typing import Dict, Iterator, Optional

import numpy as np
import pye57

from .PointCloudMat import PointCloudHeader, PointCloudMat

XYZ_E57_FIELDS = ('cartesianX', 'cartesianY', 'cartesianZ')
RGB_E57_FIELDS = ('colorRed', 'colorGreen', 'colorBlue')

def grid_from_scan_fields(fields: Dict[str, np.ndarray],
                          header: Optional[PointCloudHeader] = None) -> PointCloudMat:
    """
    Lay the points of one E57 scan out on its rowIndex/columnIndex grid.
    Cells with no point, or whose point has a non-zero cartesianInvalidState,
    get NaN positions and black color, and the cloud is marked not dense.
    """
    for name in XYZ_E57_FIELDS + ('rowIndex', 'columnIndex'):
        if name not in fields:
            raise ValueError(f"Scan has no '{name}' field, it cannot be gridded")

    rows = np.asarray(fields['rowIndex'], dtype=np.int64)
    cols = np.asarray(fields['columnIndex'], dtype=np.int64)
    if len(rows) and (rows.min() < 0 or cols.min() < 0):
        raise ValueError("rowIndex and columnIndex must be non-negative")
    height = int(rows.max()) + 1 if len(rows) else 0
    width = int(cols.max()) + 1 if len(cols) else 0

    valid = np.ones(len(rows), dtype=bool)
    if 'cartesianInvalidState' in fields:
        valid = np.asarray(fields['cartesianInvalidState']) == 0
    r, c = rows[valid], cols[valid]

    xyz = np.full((height, width, 3), np.nan, dtype=np.float64)
    rgb = np.zeros((height, width, 3), dtype=np.uint8)
    filled = np.zeros((height, width), dtype=bool)
    for i, name in enumerate(XYZ_E57_FIELDS):
        xyz[r, c, i] = np.asarray(fields[name], dtype=np.float64)[valid]
    if all(name in fields for name in RGB_E57_FIELDS):
        for i, name in enumerate(RGB_E57_FIELDS):
            rgb[r, c, i] = np.clip(np.asarray(fields[name])[valid], 0, 255)
    filled[r, c] = True

    return PointCloudMat.from_arrays(xyz, rgb, is_dense=bool(filled.all()),
                                     header=header or PointCloudHeader())

class E57File:
    def __init__(self, point_file: str) -> None:
        self.point_file = point_file
        self.e57 = pye57.E57(point_file)
        self.close = self.e57.close

    @property
    def scan_count(self) -> int:
        return self.e57.scan_count

    def read_scan(self, index: int) -> PointCloudMat:
        fields = self.e57.read_scan_raw(index)
        return grid_from_scan_fields(fields, PointCloudHeader(seq=index, frame_id=f'scan_{index}'))

    def read_scans(self) -> Iterator[PointCloudMat]:
        for index in range(self.scan_count):
            yield self.read_scan(index)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
