from __future__ import annotations

import argparse
from pathlib import Path

from backend.services.excel_export import MileageExportService, read_entry_rows
from mileage_log.models import TravelEntry


def ensure_template(service: MileageExportService, template_path: Path, force: bool = False) -> bool:
    """Write the standard blank template unless one already exists."""
    if template_path.exists() and not force:
        return False

    template_path.parent.mkdir(parents=True, exist_ok=True)
    template_path.write_bytes(service.template_bytes())
    return True


def verify(service: MileageExportService, template_path: Path) -> int:
    entries = [
        TravelEntry(
            id="sample-1",
            user_id="sample",
            entry_date="2026-02-03",
            trip="Roos <-> Wash",
            miles=4.4,
            purpose="Site visit",
            created_at="2026-02-03T09:00:00.000000Z",
        ),
        TravelEntry(
            id="sample-2",
            user_id="sample",
            entry_date="2026-02-10",
            trip="Wash <-> Kerp",
            miles=2.0,
            purpose="Supplier meeting",
            created_at="2026-02-10T09:00:00.000000Z",
        ),
    ]
    artifact = service.export(entries, "Max Mustermann", "2026-02", template_path.read_bytes())
    rows = read_entry_rows(service, artifact.content)

    if len(rows) != len(entries):
        print(f"Verification failed. Expected {len(entries)} rows, found {len(rows)}.")
        return 1

    print(f"Verification passed. Export would be saved as {artifact.filename!r}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Create and verify the mileage export template.")
    parser.add_argument("output", nargs="?", default="templates/mileage_template.xlsx", type=Path)
    parser.add_argument("--force", action="store_true", help="overwrite an existing template")
    args = parser.parse_args()

    service = MileageExportService()
    if ensure_template(service, args.output, force=args.force):
        print(f"Template written to {args.output}")
    return verify(service, args.output)


if __name__ == "__main__":
    raise SystemExit(main())
