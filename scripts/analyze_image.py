from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from poolvision.analysis_schemas import AnalysisKind
from poolvision.dispatch import AllProvidersExhausted
from poolvision.image_inputs import ImageInputError
from poolvision.pool_analysis import PoolAnalysisError, PoolAnalysisService
from poolvision.satellite_imagery import SatelliteImageryError


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run one pool analysis against the configured vision providers and print the JSON record.",
    )
    parser.add_argument(
        "kind",
        choices=[kind.value for kind in AnalysisKind],
        help="Analysis kind.",
    )
    parser.add_argument(
        "images",
        nargs="*",
        help="Image paths, http(s) URLs or data URLs. Multi-image kinds accept several.",
    )
    parser.add_argument("--address", help="Property address for satellite analysis instead of an image.")
    parser.add_argument("--equipment-type", help="Hint passed to equipment analysis (pump, filter, ...).")
    parser.add_argument("--verbose", action="store_true", help="Log provider attempts to stderr.")
    return parser


def main() -> int:
    args = _parser().parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, stream=sys.stderr)

    kind = AnalysisKind(args.kind)
    service = PoolAnalysisService.from_env()
    references: list[object] = [
        Path(item) if not item.lower().startswith(("http://", "https://", "data:")) else item
        for item in args.images
    ]

    try:
        if kind is AnalysisKind.SATELLITE and args.address:
            outcome = service.analyze_satellite(address=args.address)
        elif not references:
            raise SystemExit("Provide at least one image (or --address for satellite analysis).")
        elif kind is AnalysisKind.EQUIPMENT:
            outcome = service.analyze_equipment(images=references, equipment_type=args.equipment_type)
        else:
            outcome = service.analyze(kind, images=references)
    except (AllProvidersExhausted, ImageInputError, PoolAnalysisError, SatelliteImageryError) as exc:
        print(json.dumps({"error": str(exc)}, indent=2))
        return 1

    print(json.dumps(outcome.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
