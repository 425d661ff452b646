"""
Main entry point for stereo + IMU calibration handling

Loads a calibration by file or device id, optionally derives rectification
maps, prints a report and converts between document dialects.
"""

import argparse
import logging
import sys
from typing import Optional, Sequence, Tuple

from stereo_imu_calib.calibration.calibration_validator import CalibrationValidator
from stereo_imu_calib.data_models import Dialect
from stereo_imu_calib.params.calib_lookup import (
    get_calib_file_from_device_id, load_camera_calib_param, save_camera_calib_param
)
from stereo_imu_calib.params.duo_calib_param import DuoCalibParam
from stereo_imu_calib.utils.config_manager import ConfigManager


def parse_size(text: str) -> Tuple[int, int]:
    """Parse a WIDTHxHEIGHT argument."""
    try:
        width, height = (int(v) for v in text.lower().split('x'))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected WIDTHxHEIGHT, got '{text}'")
    return width, height


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the calibration tool."""
    parser = argparse.ArgumentParser(
        description="Inspect, rectify and convert stereo + IMU calibration files"
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--calib-file",
        type=str,
        help="Calibration document (native or OpenCV dialect)"
    )
    source.add_argument(
        "--device-id",
        type=str,
        help="Device identifier resolved through the configuration"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file"
    )

    parser.add_argument(
        "--rectify",
        type=parse_size,
        metavar="WxH",
        help="Derive undistortion maps for this output size"
    )

    parser.add_argument(
        "--convert-to",
        choices=[d.value for d in Dialect],
        help="Write the calibration in this dialect (requires --output)"
    )

    parser.add_argument(
        "--output",
        type=str,
        help="Destination of the converted calibration"
    )

    parser.add_argument(
        "--report",
        action="store_true",
        help="Print a validation report"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.convert_to and not args.output:
        parser.error("--convert-to requires --output")

    # Load configuration
    try:
        config = ConfigManager(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    calib_file = args.calib_file
    if args.device_id:
        calib_file = get_calib_file_from_device_id(args.device_id, config)
        if calib_file is None:
            print(f"Unknown device id: {args.device_id}")
            return 1

    param = DuoCalibParam(config)
    if not load_camera_calib_param(calib_file, param):
        print(f"Failed to load calibration: {param.last_error.message}")
        return 1

    print(f"Loaded calibration from: {calib_file}")

    if args.rectify:
        if not param.init_undistort_map(args.rectify):
            print(f"Rectification failed: {param.last_error.message}")
            return 1
        print(f"Undistortion maps derived for {args.rectify[0]}x{args.rectify[1]}")

    if args.report:
        validator = CalibrationValidator(config)
        results = validator.validate_calibration(param)
        print(validator.generate_calibration_report(param, results))

    if args.convert_to:
        if not save_camera_calib_param(args.output, param, Dialect(args.convert_to)):
            print(f"Failed to write calibration: {param.last_error.message}")
            return 1
        print(f"Wrote {args.convert_to} calibration to: {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
