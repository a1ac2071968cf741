"""Tests for OpenCV type codes and describe_format."""

import cv2
import numpy as np
import pytest

from pcdimgpro.cvtypes import (CV_8S, CV_8U, CV_8UC3, CV_16S, CV_16U, CV_32F, CV_32S, CV_64F,
                               CV_64FC3, describe_format, make_type, mat_channels, mat_depth,
                               type_of)


class TestDescribeFormat:
    """Labels for packed OpenCV type codes."""

    @pytest.mark.parametrize("cv_type, label", [
        (0, '8UC1'),
        (9, '8SC2'),
        (18, '16UC3'),
        (27, '16SC4'),
        (4, '32SC1'),
        (21, '32FC3'),
        (22, '64FC3'),
    ])
    def test_known_depths(self, cv_type, label):
        assert describe_format(cv_type) == label

    def test_color_image_label(self):
        assert describe_format(16) == '8UC3'
        assert describe_format(CV_8UC3) == '8UC3'

    def test_unknown_depth_is_user(self):
        assert describe_format(make_type(7, 1)) == 'UserC1'
        assert describe_format(make_type(7, 3)) == 'UserC3'

    def test_channel_count_always_appended(self):
        assert describe_format(make_type(CV_8U, 10)) == '8UC10'
        assert describe_format(make_type(CV_64F, 1)) == '64FC1'


class TestTypeArithmetic:
    """Depth and channel packing."""

    def test_unpack(self):
        assert mat_depth(make_type(CV_32F, 4)) == CV_32F
        assert mat_channels(make_type(CV_32F, 4)) == 4
        assert mat_channels(CV_8U) == 1

    def test_make_type(self):
        assert CV_8UC3 == 16
        assert CV_64FC3 == 22
        assert make_type(CV_16S) == 3

    def test_make_type_rejects_bad_channels(self):
        with pytest.raises(ValueError):
            make_type(CV_8U, 0)

    def test_type_of_arrays(self):
        assert type_of(np.zeros((2, 3, 3), dtype=np.uint8)) == CV_8UC3
        assert type_of(np.zeros((2, 3, 3), dtype=np.float64)) == CV_64FC3
        assert type_of(np.zeros((2, 3), dtype=np.float32)) == CV_32F

    def test_type_of_unsupported(self):
        with pytest.raises(TypeError):
            type_of(np.zeros((2, 3), dtype=np.int64))
        with pytest.raises(ValueError):
            type_of(np.zeros((1, 2, 3, 4), dtype=np.uint8))

    @pytest.mark.skipif(cv2.CV_8UC2 - cv2.CV_8UC1 != 8, reason="installed cv2 packs channels differently")
    def test_matches_cv2_constants(self):
        for depth in (CV_8U, CV_8S, CV_16U, CV_16S, CV_32S, CV_32F, CV_64F):
            for channels in (1, 3, 4):
                cv_type = make_type(depth, channels)
                assert cv_type == getattr(cv2, f"CV_{describe_format(cv_type)}")
