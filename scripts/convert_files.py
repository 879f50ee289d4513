"""
convert_files.py - Convert DICOM files to cards from the command line.

Runs one batch over the given paths and prints either a summary or the
card JSON that a display layer consumes:

    {"isError": false, "cards": [{"filePath": ..., "imgSrc": "data:image/png;base64,..."}]}

Nothing is written to disk.

Usage
-----
    python scripts/convert_files.py scan1.dcm scan2.dcm
    python scripts/convert_files.py --json --workers 4 data/*.dcm
"""

import argparse
import json
import logging
import os
import sys
from typing import Optional, Sequence

import yaml

# Ensure repo root is on sys.path regardless of launch directory
_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _REPO_ROOT)

from dicom_dripper import __version__  # noqa: E402  (import after path fix)
from dicom_dripper.config import LOG_LEVELS, SETTINGS, load_settings  # noqa: E402
from dicom_dripper.pipeline import convert_batch  # noqa: E402

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="convert_files",
        description=f"dicom dripper v{__version__}: DICOM files to display cards",
    )
    parser.add_argument("paths", nargs="+", help="DICOM files to convert")
    parser.add_argument("--json", action="store_true", help="print card JSON instead of a summary")
    parser.add_argument("--workers", type=int, default=None, help="thread count (default from config)")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="logging level (default from config)",
    )
    parser.add_argument("--config", default=None, help="path to a config.yaml")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = SETTINGS
    if args.config:
        if not os.path.isfile(args.config):
            parser.error(f"config file not found: {args.config}")
        try:
            settings = load_settings(args.config)
        except (ValueError, yaml.YAMLError) as exc:
            parser.error(f"invalid config {args.config}: {exc}")

    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format=settings.log_format,
    )

    result = convert_batch(args.paths, max_workers=args.workers, settings=settings)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(result.summary())
        for record in result.records:
            print(
                f"  {record.file_name}: {record.modality} {record.study_date} "
                f"{record.patient_name!r} @ {record.institution_name!r}"
            )
    if result.had_failure:
        print("Failed to load file.", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
