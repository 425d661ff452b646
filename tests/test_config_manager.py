"""
Tests for ConfigManager
"""

import pytest
import yaml

from stereo_imu_calib.utils.config_manager import ConfigManager


class TestConfigManager:
    """Test suite for configuration loading and validation."""

    def test_default_sections(self, config_manager):
        """Test that the packaged defaults are loaded."""
        assert config_manager.get('calibration.calib_file_name') == 'calib.yaml'
        assert config_manager.get_calibration_params()['device_calib_files'] == {}
        assert config_manager.get_rectification_params()['min_baseline'] == pytest.approx(0.001)
        assert config_manager.get_validation_params()['rigid_tolerance'] == pytest.approx(0.001)

    def test_get_missing_key_returns_default(self, config_manager):
        """Test dot-notation lookup of absent keys."""
        assert config_manager.get('rectification.unknown') is None
        assert config_manager.get('no.such.key', 42) == 42

    def test_set_creates_intermediate_sections(self, config_manager):
        """Test that setting a nested key creates missing sections."""
        config_manager.set('extras.tool.name', 'viewer')
        assert config_manager.get('extras.tool.name') == 'viewer'

    @pytest.mark.parametrize("key,value", [
        ('rectification.min_baseline', 0.0),
        ('rectification.max_baseline', 0.0005),
        ('rectification.alpha', 1.5),
        ('rectification.fisheye_balance', -0.1),
        ('rectification.fisheye_fov_scale', 0.0),
        ('rectification.map_type', 'CV_8UC1'),
        ('validation.rigid_tolerance', 0.0),
        ('calibration.device_calib_files', ['not', 'a', 'mapping']),
    ])
    def test_invalid_values_rejected(self, config_manager, key, value):
        """Test that inconsistent settings fail validation."""
        with pytest.raises(ValueError):
            config_manager.set(key, value)

    def test_register_device(self, config_manager):
        """Test adding entries to the device table."""
        config_manager.register_device('XP3-0001', '/data/xp3/calib.yaml')
        config_manager.register_device('XP2-0002', '/data/xp2/calib.yaml')

        table = config_manager.get('calibration.device_calib_files')
        assert table == {'XP3-0001': '/data/xp3/calib.yaml', 'XP2-0002': '/data/xp2/calib.yaml'}

    def test_save_and_reload(self, config_manager, tmp_path):
        """Test that a saved configuration is loaded back unchanged."""
        config_manager.set('rectification.alpha', -1.0)
        config_manager.register_device('XP3-0001', '/data/xp3/calib.yaml')
        path = tmp_path / "config.yaml"

        config_manager.save(str(path))
        reloaded = ConfigManager(str(path))

        assert reloaded.get('rectification.alpha') == -1.0
        assert reloaded.get('calibration.device_calib_files.XP3-0001') == '/data/xp3/calib.yaml'

    def test_missing_config_file(self, tmp_path):
        """Test that a missing configuration file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigManager(str(tmp_path / "absent.yaml"))

    def test_malformed_config_file(self, tmp_path):
        """Test that unparsable YAML raises ValueError."""
        path = tmp_path / "bad.yaml"
        path.write_text("rectification: [unclosed\n")

        with pytest.raises(ValueError):
            ConfigManager(str(path))

    def test_empty_config_uses_builtin_defaults(self, tmp_path):
        """Test that an empty file is accepted and lookups fall back to defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = ConfigManager(str(path))

        assert config.get_rectification_params() == {}
        assert config.get('rectification.alpha', 0.0) == 0.0

    def test_non_mapping_root_rejected(self, tmp_path):
        """Test that a list document is not a configuration."""
        path = tmp_path / "list.yaml"
        path.write_text(yaml.safe_dump([1, 2, 3]))

        with pytest.raises(ValueError):
            ConfigManager(str(path))
