import numpy as np

from pcdimgpro import ColorType, PointCloudMat, describe_format
from pcdimgpro.processors import MatProcessors, Processors

def red_mask(mats_data, mats_info, meta):
    # stand-in for a segmentation model, color images are at odd indices
    return [(color[..., 2] > 127).astype(np.uint8) for color in mats_data[1::2]]

cloud = PointCloudMat.random(48, 64, seed=0)
print(cloud.height, cloud.width, cloud.size())

to_images = Processors.CloudToImages(save_results_to_meta=True)
segment = Processors.Lambda(out_color_type=ColorType.GRAYSCALE)
segment._forward_raw = red_mask

pipes = [
    to_images,
    Processors.BackUp(uuid='BackUp:images'),
    segment,
    Processors.BackUp(uuid='BackUp:mask'),
]
mats, meta = MatProcessors.run_once([cloud], {}, pipes, validate=True)
print('mask', mats[0].info.describe())

images = meta['BackUp:images'].get_backup_mats()
print([describe_format(img.info.cv_type) for img in images])

back = [
    Processors.ApplyMask(mask_uuid='BackUp:mask'),
    Processors.ImagesToCloud(source_uuid=to_images.uuid),
]
clouds, meta = MatProcessors.run_once(images, meta, back, validate=True)
kept = clouds[0].xyz().any(axis=1)
print('kept points', kept.sum(), 'of', clouds[0].size())

print(MatProcessors.dumps(pipes + back))
