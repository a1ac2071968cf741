"""Tests for the pipeline processors."""

import numpy as np
import pytest

from pcdimgpro.ImageMat import ColorType, ImageMat
from pcdimgpro.PointCloudMat import PointCloudHeader, PointCloudMat
from pcdimgpro.processors import MatProcessors, Processors


def red_mask(mats_data, mats_info, meta):
    """Stand-in segmentation: keep pixels whose red channel is above 127."""
    color = mats_data[1]
    return [(color[..., 2] > 127).astype(np.uint8)]


class TestCloudImagePipeline:
    """CloudToImages and ImagesToCloud chained."""

    def test_round_trip_keeps_clouds_and_headers(self, grid_cloud, random_cloud):
        c2i = Processors.CloudToImages(save_results_to_meta=True)
        i2c = Processors.ImagesToCloud(source_uuid=c2i.uuid)

        clouds, meta = MatProcessors.run_once([grid_cloud, random_cloud], {}, [c2i, i2c], validate=True)

        assert clouds == [grid_cloud, random_cloud]
        assert clouds[0].header == grid_cloud.header
        assert not clouds[0].is_dense
        assert meta[c2i.uuid] is c2i

    def test_images_are_typed(self, grid_cloud):
        images, _ = Processors.CloudToImages()([grid_cloud], {})
        assert [img.color_type for img in images] == [ColorType.XYZ, ColorType.BGR]
        assert images[1].info.describe() == '8UC3'
        assert images[0].info.describe() == '64FC3'

    def test_default_headers(self, grid_cloud):
        images, _ = Processors.CloudToImages()([grid_cloud], {})
        clouds, _ = Processors.ImagesToCloud(frame_id='camera')(images, {})
        assert clouds[0].header == PointCloudHeader(seq=0, frame_id='camera')

    def test_unstructured_cloud_rejected(self):
        with pytest.raises(ValueError):
            Processors.CloudToImages().validate([PointCloudMat.zeros(1, 1)], {})

    def test_images_need_pairs(self, grid_cloud):
        images, _ = Processors.CloudToImages()([grid_cloud], {})
        with pytest.raises(ValueError):
            Processors.ImagesToCloud().validate(images[:1], {})
        with pytest.raises(TypeError):
            Processors.ImagesToCloud().validate(images[::-1], {})

    def test_image_pair_size_checked(self):
        position = ImageMat(color_type=ColorType.XYZ).build(np.zeros((2, 2, 3)))
        color = ImageMat(color_type=ColorType.BGR).build(np.zeros((2, 3, 3), dtype=np.uint8))
        with pytest.raises(ValueError):
            Processors.ImagesToCloud().validate([position, color], {})


class TestMaskPipeline:
    """Segmentation mask applied between projection and reconstruction."""

    def test_masked_points_are_zeroed(self):
        xyz = np.ones((2, 3, 3))
        rgb = np.zeros((2, 3, 3), dtype=np.uint8)
        rgb[0, 1] = [200, 5, 5]
        rgb[1, 2] = [255, 0, 0]
        cloud = PointCloudMat.from_arrays(xyz, rgb)

        segment = Processors.Lambda(out_color_type=ColorType.GRAYSCALE)
        segment._forward_raw = red_mask
        pipes = [
            Processors.CloudToImages(),
            Processors.BackUp(uuid='BackUp:images'),
            segment,
            Processors.BackUp(uuid='BackUp:mask'),
        ]
        mats, meta = MatProcessors.run_once([cloud], {}, pipes, validate=True)
        assert mats[0].color_type == ColorType.GRAYSCALE

        images = meta['BackUp:images'].get_backup_mats()
        images, meta = Processors.ApplyMask(mask_uuid='BackUp:mask').validate(images, meta)
        clouds, _ = Processors.ImagesToCloud().validate(images, meta)

        kept = np.zeros((2, 3), dtype=bool)
        kept[0, 1] = kept[1, 2] = True
        out_xyz = clouds[0].xyz().reshape(2, 3, 3)
        out_rgb = clouds[0].rgb().reshape(2, 3, 3)
        np.testing.assert_array_equal(out_xyz[kept], xyz[kept])
        assert not out_xyz[~kept].any()
        np.testing.assert_array_equal(out_rgb[kept], rgb[kept])
        assert not out_rgb[~kept].any()

    def test_last_input_is_mask(self):
        img = ImageMat(color_type=ColorType.BGR).build(np.full((2, 2, 3), 50, dtype=np.uint8))
        mask = ImageMat(color_type=ColorType.GRAYSCALE).build(np.array([[1, 0], [0, 0]], dtype=np.uint8))

        out, _ = Processors.ApplyMask().validate([img, mask], {})

        assert len(out) == 1
        assert out[0].color_type == ColorType.BGR
        assert out[0].data()[0, 0].tolist() == [50, 50, 50]
        assert out[0].data().sum() == 150

    def test_missing_mask_input(self):
        img = ImageMat(color_type=ColorType.BGR).build(np.zeros((2, 2, 3), dtype=np.uint8))
        with pytest.raises(ValueError, match="mask"):
            Processors.ApplyMask()([img], {})
        with pytest.raises(ValueError, match="mask"):
            Processors.ApplyMask()([], {})

    def test_mask_count_checked(self):
        imgs = [ImageMat(color_type=ColorType.GRAYSCALE).build(np.ones((2, 2), dtype=np.uint8)) for _ in range(4)]
        backup = Processors.BackUp(uuid='BackUp:masks')
        _, meta = backup(imgs[:2], {})
        with pytest.raises(ValueError):
            Processors.ApplyMask(mask_uuid='BackUp:masks')(imgs[:3], meta)


class TestProcessorBehaviour:
    """Generic processor behaviour."""

    def test_disabled_passes_through(self, grid_cloud):
        c2i = Processors.CloudToImages()
        c2i.off()
        assert not c2i.is_enable()
        mats, _ = c2i([grid_cloud], {})
        assert mats[0] is grid_cloud

    def test_backup_copies(self, grid_cloud):
        backup = Processors.BackUp()
        backup([grid_cloud], {})
        restored = backup.get_backup_mats()
        assert restored == [grid_cloud]
        assert restored[0] is not grid_cloud

    def test_doing_nothing(self, grid_cloud):
        mats, _ = Processors.DoingNothing()([grid_cloud], {})
        assert mats == [grid_cloud]
        assert mats[0].header == grid_cloud.header

    def test_uuid_prefix_is_class_name(self):
        assert Processors.ApplyMask().uuid.startswith('ApplyMask:')


class TestMatProcessors:
    """Pipeline config and runners."""

    def test_dumps_loads(self):
        pipes = [
            Processors.CloudToImages(uuid='CloudToImages:c2i', save_results_to_meta=True),
            Processors.ApplyMask(mask_uuid='BackUp:mask'),
            Processors.ImagesToCloud(source_uuid='CloudToImages:c2i', frame_id='camera'),
        ]
        loaded = MatProcessors.loads(MatProcessors.dumps(pipes))

        assert [type(p) for p in loaded] == [type(p) for p in pipes]
        assert [p.uuid for p in loaded] == [p.uuid for p in pipes]
        assert loaded[0].save_results_to_meta
        assert loaded[1].mask_uuid == 'BackUp:mask'
        assert loaded[2].frame_id == 'camera'

    def test_run_over_frames(self, grid_cloud):
        calls = []
        counter = Processors.Lambda()
        counter._forward_raw = lambda mats_data, mats_info, meta: calls.append(1) or mats_data

        MatProcessors.run([[grid_cloud]] * 3, [Processors.CloudToImages(), counter])
        assert len(calls) == 3

    def test_run_once_reports_failing_processor(self, capsys):
        c2i = Processors.CloudToImages()
        with pytest.raises(ValueError):
            MatProcessors.run_once([PointCloudMat.zeros(1, 1)], {}, [c2i], validate=True)
        assert c2i.uuid in capsys.readouterr().out
