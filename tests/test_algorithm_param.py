"""
Tests for AlgorithmParam persistence
"""

import tempfile
from pathlib import Path

import cv2
import pytest
import yaml
from hypothesis import given, settings, strategies as st

from stereo_imu_calib.data_models import Dialect, FeatDetParam, SlaveDetMode, Tracking
from stereo_imu_calib.exceptions import MalformedDocumentError, MissingFileError
from stereo_imu_calib.params.algorithm_param import AlgorithmParam


class TestAlgorithmParam:
    """Test suite for feature detection and tracking parameters."""

    def test_defaults(self):
        """Test that a new instance carries the documented defaults."""
        param = AlgorithmParam()

        assert param.feat_det_param.request_feat_num == 70
        assert param.feat_det_param.pyra_level == 2
        assert param.feat_det_param.feature_track_dropout_rate == pytest.approx(0.3)
        assert param.tracking.max_feature_search_range == pytest.approx(0.025)
        assert param.tracking.orb_match_dist_thresh == pytest.approx(76.5)
        assert param.tracking.imaging_FPS == 20
        assert param.tracking.use_of_id is True
        assert param.tracking.use_april_tag is False
        assert param.tracking.slave_det == SlaveDetMode.DIRECT

    def test_missing_keys_keep_defaults(self, write_yaml):
        """Test that a partial document only overrides the keys it names."""
        path = write_yaml({'FeatDetParam': {'request_feat_num': 150}}, "algorithm.yaml")
        param = AlgorithmParam()

        assert param.load_from_yaml(path)
        assert param.feat_det_param.request_feat_num == 150
        assert param.feat_det_param.fast_det_thresh == FeatDetParam().fast_det_thresh
        assert param.tracking == Tracking()

    def test_empty_mapping_gives_defaults(self, write_yaml):
        """Test that an empty mapping is a valid document."""
        param = AlgorithmParam()

        assert param.load_from_yaml(write_yaml({}, "algorithm.yaml"))
        assert param.feat_det_param == FeatDetParam()
        assert param.tracking == Tracking()

    def test_integer_for_float_field(self, write_yaml):
        """Test that integral YAML scalars are accepted for real-valued fields."""
        path = write_yaml({'Tracking': {'feature_uncertainty': 4}}, "algorithm.yaml")
        param = AlgorithmParam()

        assert param.load_from_yaml(path)
        assert param.tracking.feature_uncertainty == 4.0
        assert isinstance(param.tracking.feature_uncertainty, float)

    @pytest.mark.parametrize("mode", list(SlaveDetMode))
    def test_slave_det_modes(self, write_yaml, mode):
        """Test every recognized slave detection mode."""
        path = write_yaml({'Tracking': {'slave_det': mode.value}}, "algorithm.yaml")
        param = AlgorithmParam()

        assert param.load_from_yaml(path)
        assert param.tracking.slave_det == mode

    def test_unknown_slave_det_fails(self, write_yaml):
        """Test that an unrecognized mode fails and keeps the previous values."""
        path = write_yaml({'Tracking': {'slave_det': 'sift', 'imaging_FPS': 30}}, "algorithm.yaml")
        param = AlgorithmParam()
        tracking_before = param.tracking

        assert not param.load_from_yaml(path)
        assert isinstance(param.last_error, MalformedDocumentError)
        assert 'sift' in param.last_error.message
        assert param.tracking is tracking_before
        assert param.tracking.imaging_FPS == 20

    @pytest.mark.parametrize("section,key,value", [
        ('FeatDetParam', 'request_feat_num', 'many'),
        ('FeatDetParam', 'pyra_level', 2.5),
        ('Tracking', 'use_of_id', 'yes please'),
        ('Tracking', 'orb_match_thresh_test_ratio', True),
    ])
    def test_wrong_value_type_fails(self, write_yaml, section, key, value):
        """Test that values of the wrong type are rejected."""
        path = write_yaml({section: {key: value}}, "algorithm.yaml")
        param = AlgorithmParam()

        assert not param.load_from_yaml(path)
        assert isinstance(param.last_error, MalformedDocumentError)

    def test_section_not_mapping_fails(self, write_yaml):
        """Test that a scalar section is rejected."""
        param = AlgorithmParam()

        assert not param.load_from_yaml(write_yaml({'Tracking': 3}, "algorithm.yaml"))
        assert isinstance(param.last_error, MalformedDocumentError)

    def test_missing_file(self, tmp_path):
        """Test that a missing document fails with MissingFileError."""
        param = AlgorithmParam()

        assert not param.load_from_yaml(tmp_path / "absent.yaml")
        assert isinstance(param.last_error, MissingFileError)

    def test_native_document_layout(self, tmp_path):
        """Test the section names and scalar encoding of the native layout."""
        param = AlgorithmParam()
        param.tracking.slave_det = SlaveDetMode.OPTICAL_FLOW
        path = tmp_path / "algorithm.yaml"

        assert param.write_to_yaml(path)
        document = yaml.safe_load(path.read_text())

        assert set(document) == {'FeatDetParam', 'Tracking'}
        assert document['Tracking']['slave_det'] == 'optical_flow'
        assert document['Tracking']['use_of_id'] is True
        assert document['FeatDetParam']['request_feat_num'] == 70

    def test_cv_round_trip(self, tmp_path):
        """Test that the OpenCV layout preserves every field."""
        param = AlgorithmParam()
        param.feat_det_param.uniform_radius = 33
        param.tracking.use_april_tag = True
        param.tracking.slave_det = SlaveDetMode.ORB
        path = tmp_path / "algorithm_cv.yaml"

        assert param.write_to_cv_yaml(path)
        assert path.read_text().startswith("%YAML")

        reloaded = AlgorithmParam()
        assert reloaded.load_from_cv_yaml(path)
        assert reloaded.feat_det_param == param.feat_det_param
        assert reloaded.tracking == param.tracking

    @pytest.mark.parametrize("value", [float("inf"), float("nan")])
    def test_cv_non_finite_integer_fails(self, tmp_path, value):
        """Test that a non-finite value for an integer field is a malformed document."""
        path = tmp_path / "algorithm_cv.yaml"
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
        fs.startWriteStruct("FeatDetParam", cv2.FILE_NODE_MAP)
        fs.write("pyra_level", value)
        fs.endWriteStruct()
        fs.release()

        param = AlgorithmParam()
        assert not param.load_from_cv_yaml(path)
        assert isinstance(param.last_error, MalformedDocumentError)
        assert param.feat_det_param.pyra_level == 2


algorithm_values = st.fixed_dictionaries({
    'request_feat_num': st.integers(min_value=1, max_value=5000),
    'pyra_level': st.integers(min_value=0, max_value=8),
    'feature_track_dropout_rate': st.floats(min_value=0.0, max_value=1.0, allow_subnormal=False),
    'max_feature_search_range': st.floats(min_value=1e-6, max_value=1.0, allow_subnormal=False),
    'imaging_exposure': st.integers(min_value=1, max_value=1000),
    'use_of_id': st.booleans(),
    'undistort_before_vio': st.booleans(),
    'slave_det': st.sampled_from(list(SlaveDetMode)),
})


def _apply(param: AlgorithmParam, values) -> None:
    for key, value in values.items():
        block = param.feat_det_param if hasattr(param.feat_det_param, key) else param.tracking
        setattr(block, key, value)


@pytest.mark.property
class TestAlgorithmParamProperties:
    """Property-based tests for AlgorithmParam persistence."""

    @given(values=algorithm_values, dialect=st.sampled_from(list(Dialect)))
    @settings(max_examples=40, deadline=None)
    def test_write_then_load_preserves_fields(self, values, dialect):
        """Property: every written parameter set is read back unchanged."""
        param = AlgorithmParam()
        _apply(param, values)

        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "algorithm.yaml"
            assert param.save(path, dialect)

            reloaded = AlgorithmParam()
            assert reloaded.load(path, dialect)

        assert reloaded.feat_det_param == param.feat_det_param
        assert reloaded.tracking == param.tracking
