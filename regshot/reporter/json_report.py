"""JSON status report for the review UI."""

from __future__ import annotations

import json
import time
from pathlib import Path

from regshot.models.screenshot import Screenshot
from regshot.screenshots.grouping import count_by_category


def build_report(screenshots: list[Screenshot], output_dir: str | Path | None = None) -> dict:
    report = {
        "generatedAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "counts": count_by_category(screenshots),
        "total": len(screenshots),
        "screenshots": [s.to_api_dict() for s in screenshots],
    }
    if output_dir is not None:
        report["outputDir"] = str(output_dir)
    return report


def generate_json_report(
    screenshots: list[Screenshot],
    output_path: Path,
    output_dir: str | Path | None = None,
) -> None:
    """Write a machine-readable JSON report."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(build_report(screenshots, output_dir), f, indent=2, default=str)
