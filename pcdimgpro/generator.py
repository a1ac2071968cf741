import json
import time
import uuid
from typing import Iterator, List

import numpy as np
from pydantic import BaseModel

from .PointCloudMat import POINT_XYZRGB, PointCloudHeader, PointCloudMat

logger = print

class PointCloudMatGenerator(BaseModel):
    sources: List[str]
    uuid: str = ''
    frame_id: str = ''
    fps: int = -1
    _min_frame_time: float = 0.0
    _seq: int = 0

    _resources: List = []
    _frame_generators: List = []

    def model_post_init(self, context):
        self._min_frame_time = 1.0 / self.fps if self.fps > 0 else 0
        if not self.uuid:
            self.uuid = f'{self.__class__.__name__}:{uuid.uuid4()}'

        if not self.sources:
            raise ValueError("Empty sources.")

        self._frame_generators = [self.create_frame_generator(i, src) for i, src in enumerate(self.sources)]
        return super().model_post_init(context)

    def register_resource(self, resource):
        self._resources.append(resource)
        return resource

    @staticmethod
    def has_func(obj, name):
        return callable(getattr(obj, name, None))

    def release_resources(self):
        cleanup_methods = ["stop", "release", "close"]
        for res in self._resources:
            for method in cleanup_methods:
                if self.has_func(res, method):
                    try:
                        getattr(res, method)()
                    except Exception as e:
                        logger(f"[{self.uuid}] Error during {method} on {res}: {e}")
        self._resources.clear()

    def create_frame_generator(self, idx, source) -> Iterator[PointCloudMat]:
        raise NotImplementedError("Subclasses must implement `create_frame_generator`")

    def make_header(self) -> PointCloudHeader:
        header = PointCloudHeader(seq=self._seq, stamp=int(time.time() * 1e6), frame_id=self.frame_id)
        self._seq += 1
        return header

    def __iter__(self):
        return self

    def __next__(self) -> List[PointCloudMat]:
        start_time = time.time()
        frames = [next(frame_gen, None) for frame_gen in self._frame_generators]
        if not frames or any(f is None for f in frames):
            raise StopIteration

        header = self.make_header()
        for frame in frames:
            frame.info.header = header.model_copy()

        if self.fps > 0:
            sleep_time = self._min_frame_time - (time.time() - start_time)
            if sleep_time > 0:
                time.sleep(sleep_time)

        return frames

    def reset_generators(self):
        self.release_resources()
        self._seq = 0
        self._frame_generators = [self.create_frame_generator(i, src) for i, src in enumerate(self.sources)]

    def release(self):
        self.release_resources()

class NumpyGridFrameFileGenerator(PointCloudMatGenerator):
    """
    Reads .npy stacks of structured frames. Accepted layouts:
      (F, H, W, 6) [x, y, z, r, g, b]
      (F, H, W, 4) float32 [x, y, z, packed rgb]
      (F, H, W)    POINT_XYZRGB records
    """
    loop: bool = True

    @staticmethod
    def to_cloud(frame: np.ndarray) -> PointCloudMat:
        if frame.dtype == POINT_XYZRGB and frame.ndim == 2:
            return PointCloudMat().build(np.ascontiguousarray(frame))
        if frame.ndim == 3 and frame.shape[-1] == 6:
            return PointCloudMat.from_arrays(frame[..., :3].astype(np.float64),
                                             frame[..., 3:].round().astype(np.uint8))
        if frame.ndim == 3 and frame.shape[-1] == 4:
            return PointCloudMat.from_packed(frame)
        raise ValueError(f"Unsupported frame layout: shape {frame.shape}, dtype {frame.dtype}")

    def create_frame_generator(self, idx, source):
        arr = np.load(source)
        def gen(arr=arr):
            if len(arr) == 0:
                return
            cnt = 0
            while True:
                if self.loop:
                    i = cnt % len(arr)
                else:
                    i = cnt
                    if i >= len(arr):
                        break
                yield self.to_cloud(arr[i])
                cnt += 1
        return gen()

class PointCloudMatGenerators(BaseModel):

    @staticmethod
    def dumps(gen: PointCloudMatGenerator):
        return json.dumps(gen.model_dump())

    @staticmethod
    def loads(gen_json: str) -> PointCloudMatGenerator:
        gen = {
            'NumpyGridFrameFileGenerator': NumpyGridFrameFileGenerator,
        }
        g = json.loads(gen_json)
        return gen[f'{g["uuid"].split(":")[0]}'](**g)
