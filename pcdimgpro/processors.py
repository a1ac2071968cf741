# ===============================
# Standard Library Imports
# ===============================
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import uuid

# ===============================
# Third-Party Library Imports
# ===============================
import numpy as np
import torch
from pydantic import BaseModel, ConfigDict, PrivateAttr

# ===============================
# Custom Modules
# ===============================
from .conversions import apply_mask, cloud_to_images, images_to_cloud
from .ImageMat import ColorType, ImageMat, ImageMatInfo, mat_ops_for
from .PointCloudMat import PointCloudHeader, PointCloudMat, PointCloudMatInfo

logger = print

Mat = Union[PointCloudMat, ImageMat]
MatInfo = Union[PointCloudMatInfo, ImageMatInfo]

class MatProcessor(BaseModel):
    title: str
    uuid: str = ''

    save_results_to_meta: bool = False
    input_mats: List[Mat] = []
    out_mats: List[Mat] = []
    _enable: bool = True

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_post_init(self, context: Any, /) -> None:
        if not self.title:
            self.title = self.__class__.__name__
        if not self.uuid:
            self.uuid = f'{self.__class__.__name__}:{uuid.uuid4()}'
        return super().model_post_init(context)

    def is_enable(self):
        return self._enable

    def on(self):
        self._enable = True

    def off(self):
        self._enable = False

    def validate_mat(self, idx: int, mat: Mat):
        """
        Implement per-mat validation logic.
        Example: mat.require_structured(), mat.require_cv_type(CV_8UC3), etc.
        """
        raise NotImplementedError()

    def validate(self, mats: List[Mat], meta: Dict = {}, run=True):
        for i, mat in enumerate(mats):
            self.validate_mat(i, mat)
        self.input_mats = list(mats)
        if run:
            return self(self.input_mats, meta)
        return self.input_mats

    def build_out_mats(self, validated_mats: List[Mat], converted_raw_mats) -> List[Mat]:
        self.out_mats = []
        for old, raw in zip(validated_mats, converted_raw_mats):
            if isinstance(old, ImageMat):
                self.out_mats.append(ImageMat(color_type=old.color_type).build(raw))
            else:
                self.out_mats.append(PointCloudMat().build(raw, is_dense=old.is_dense, header=old.header))
        return self.out_mats

    def forward_raw(self, mats_data: List[Any], mats_info: List[MatInfo] = [], meta={}) -> List[Any]:
        """
        To be implemented by subclass.
        mats_data: raw point grids, np.ndarray or torch.Tensor images.
        mats_info: corresponding PointCloudMatInfo / ImageMatInfo list.
        """
        raise NotImplementedError()

    def forward(self, mats: List[Mat], meta: Dict) -> Tuple[List[Mat], Dict]:
        if not self._enable:
            return mats, meta

        input_infos = [mat.info for mat in mats]
        forwarded = self.forward_raw([mat.data() for mat in mats], input_infos, meta)
        self.input_mats = list(mats)
        self.out_mats = self.build_out_mats(self.input_mats, forwarded)

        if self.save_results_to_meta:
            meta[self.uuid] = self

        return self.out_mats, meta

    def __call__(self, mats: List[Mat], meta: dict = {}):
        return self.forward(mats, meta)

class Processors:
    class DoingNothing(MatProcessor):
        title: str = 'doing_nothing'
        def validate_mat(self, idx, mat):
            pass
        def forward_raw(self, mats_data, mats_info=[], meta={}):
            return mats_data

    class BackUp(MatProcessor):
        title: str = 'output_backup'
        save_results_to_meta: bool = True
        _backup_mats: List[Mat] = []

        def validate_mat(self, idx, mat):
            pass

        def get_backup_mats(self) -> List[Mat]:
            return [mat.copy() for mat in self._backup_mats]

        def forward_raw(self, mats_data, mats_info=[], meta={}):
            return mats_data

        def forward(self, mats: List[Mat], meta: Dict) -> Tuple[List[Mat], Dict]:
            self._backup_mats = [mat.copy() for mat in mats]
            return super().forward(mats, meta)

    class CloudToImages(MatProcessor):
        """[cloud, ...] -> [position, color, ...], XYZ then BGR per cloud."""
        title: str = 'cloud_to_images'
        headers: List[PointCloudHeader] = []

        def validate_mat(self, idx, mat: PointCloudMat):
            if not isinstance(mat, PointCloudMat):
                raise TypeError(f"Expected PointCloudMat, got {type(mat)}")
            mat.require_structured()
            mat.require_int32_dims()

        def build_out_mats(self, validated_mats, converted_raw_mats):
            self.out_mats = [
                ImageMat(color_type=ColorType.XYZ if i % 2 == 0 else ColorType.BGR).build(img)
                for i, img in enumerate(converted_raw_mats)
            ]
            return self.out_mats

        def forward_raw(self, mats_data: List[np.ndarray], mats_info: List[PointCloudMatInfo] = [], meta={}) -> List[np.ndarray]:
            res = []
            self.headers = []
            for grid, info in zip(mats_data, mats_info):
                position_image, color_image = cloud_to_images(PointCloudMat().build(grid, info=info))
                res += [position_image, color_image]
                self.headers.append(info.header)
            return res

    class ImagesToCloud(MatProcessor):
        """[position, color, ...] -> [cloud, ...]"""
        title: str = 'images_to_cloud'
        source_uuid: str = ''
        frame_id: str = ''
        _clouds: List[PointCloudMat] = []

        def validate_mat(self, idx, mat: ImageMat):
            if not isinstance(mat, ImageMat):
                raise TypeError(f"Expected ImageMat, got {type(mat)}")
            mat.require_color_type(ColorType.XYZ if idx % 2 == 0 else ColorType.BGR)

        def validate(self, mats, meta={}, run=True):
            if len(mats) % 2 != 0:
                raise ValueError(f"Expected [position, color] image pairs, got {len(mats)} images")
            for position, color in zip(mats[0::2], mats[1::2]):
                position.require_same_size(color)
            return super().validate(mats, meta, run)

        def resolve_headers(self, meta: Dict, count: int) -> List[PointCloudHeader]:
            source: Optional[Processors.CloudToImages] = meta.get(self.source_uuid) if self.source_uuid else None
            if source is not None and len(source.headers) == count:
                return source.headers
            return [PointCloudHeader(seq=i, frame_id=self.frame_id) for i in range(count)]

        def build_out_mats(self, validated_mats, converted_raw_mats):
            self.out_mats = self._clouds
            return self.out_mats

        def forward_raw(self, mats_data, mats_info=[], meta={}):
            headers = self.resolve_headers(meta, len(mats_data) // 2)
            self._clouds = [
                images_to_cloud(color, position, header)
                for position, color, header in zip(mats_data[0::2], mats_data[1::2], headers)
            ]
            return [cloud.data() for cloud in self._clouds]

    class ApplyMask(MatProcessor):
        """
        Multiplies every input image by a mask. Masks come from the BackUp
        processor named by mask_uuid in meta, one per image or a single one
        for all. Without mask_uuid the last input is the mask.
        """
        title: str = 'apply_mask'
        mask_uuid: str = ''

        def validate_mat(self, idx, mat: ImageMat):
            if not isinstance(mat, ImageMat):
                raise TypeError(f"Expected ImageMat, got {type(mat)}")

        def masks(self, mats_data: List[Any], meta: Dict) -> Tuple[List[Any], List[Any]]:
            if not self.mask_uuid:
                if len(mats_data) < 2:
                    raise ValueError(
                        f"Without mask_uuid the last input is the mask, expected at least 2 images, got {len(mats_data)}")
                return mats_data[:-1], [mats_data[-1]]
            backup: Processors.BackUp = meta[self.mask_uuid]
            return mats_data, [m.data() for m in backup.get_backup_mats()]

        def build_out_mats(self, validated_mats, converted_raw_mats):
            self.out_mats = [
                ImageMat(color_type=old.color_type).build(img)
                for old, img in zip(validated_mats, converted_raw_mats)
            ]
            return self.out_mats

        def forward_raw(self, mats_data, mats_info=[], meta={}):
            images, masks = self.masks(mats_data, meta)
            if len(masks) not in (1, len(images)):
                raise ValueError(f"Expected 1 or {len(images)} masks, got {len(masks)}")
            res = []
            for i, img in enumerate(images):
                mask = masks[0] if len(masks) == 1 else masks[i]
                if isinstance(img, np.ndarray) and torch.is_tensor(mask):
                    mask = mat_ops_for(mask).to_numpy(mask)
                res.append(apply_mask(img, mask))
            return res

    class Lambda(MatProcessor):
        """
        Runs a user supplied forward_raw, e.g. the segmentation model that turns
        color images into masks. out_color_type overrides the output image type.
        """
        title: str = 'lambda'
        out_color_type: Optional[ColorType] = None
        _forward_raw: Callable = PrivateAttr(default=lambda mats_data, mats_info, meta: mats_data)

        def validate_mat(self, idx, mat):
            pass

        def build_out_mats(self, validated_mats, converted_raw_mats):
            if self.out_color_type is None:
                return super().build_out_mats(validated_mats, converted_raw_mats)
            self.out_mats = [ImageMat(color_type=self.out_color_type).build(img) for img in converted_raw_mats]
            return self.out_mats

        def forward_raw(self, mats_data, mats_info=[], meta={}):
            return self._forward_raw(mats_data, mats_info, meta)

class MatProcessors(BaseModel):
    @staticmethod
    def dumps(pipes: List[MatProcessor]):
        return json.dumps([p.model_dump(mode='json', exclude={'input_mats', 'out_mats'}) for p in pipes])

    @staticmethod
    def loads(pipes_json: str) -> List[MatProcessor]:
        processors = {k: v for k, v in Processors.__dict__.items() if '__' not in k}
        return [processors[f'{p["uuid"].split(":")[0]}'](**p)
                for p in json.loads(pipes_json)]

    @staticmethod
    def run_once(mats, meta={},
                 pipes: List[MatProcessor] = [],
                 validate=False):
        fn = None
        try:
            for fn in pipes:
                mats, meta = (fn.validate if validate else fn)(mats, meta)
        except Exception as e:
            logger(fn.uuid if fn else '', e)
            raise e
        return mats, meta

    @staticmethod
    def run(gen,
            pipes: List[MatProcessor] = [],
            meta={}, validate_once=False):
        if isinstance(pipes, str):
            pipes = MatProcessors.loads(pipes)
        for i, mats in enumerate(gen):
            MatProcessors.run_once(mats, meta, pipes, validate=(i == 0))
            if validate_once: return
