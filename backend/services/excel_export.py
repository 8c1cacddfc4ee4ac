from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
import logging
from pathlib import Path
from typing import Any, Sequence
import zipfile

import yaml
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from mileage_log.core import build_export_filename, parse_iso_date
from mileage_log.errors import CapacityExceeded, ExportError
from mileage_log.models import ExportArtifact, TravelEntry

logger = logging.getLogger(__name__)

DEFAULT_MAPPING_PATH = Path(__file__).resolve().parents[1] / "config" / "excel_mapping.yaml"

ENTRY_FIELDS = ("entry_date", "trip", "miles", "purpose")


@dataclass
class MileageExportService:
    """Fill the monthly mileage template with a month's ordered entries."""

    template_path: Path | None = None
    mapping_path: Path = DEFAULT_MAPPING_PATH

    def __post_init__(self) -> None:
        self.mapping = self._load_mapping(self.mapping_path)
        section = self.mapping["entries"]
        self.start_row = int(section["start_row"])
        self.end_row = int(section["end_row"])
        self.columns: dict[str, str] = section["columns"]
        self.number_formats: dict[str, str] = section.get("number_formats", {})
        missing = [field for field in ENTRY_FIELDS if field not in self.columns]
        if missing:
            raise ValueError(f"entries.columns is missing: {', '.join(missing)}")

    @staticmethod
    def _load_mapping(mapping_path: Path) -> dict[str, Any]:
        with Path(mapping_path).open("r", encoding="utf-8") as mapping_file:
            loaded = yaml.safe_load(mapping_file)

        if not isinstance(loaded, dict):
            msg = f"Mapping file must contain a dictionary at root: {mapping_path}"
            raise ValueError(msg)

        return loaded

    @property
    def sheet_name(self) -> str:
        return self.mapping["workbook"]["sheet_name"]

    @property
    def capacity(self) -> int:
        return self.end_row - self.start_row + 1

    def export(
        self,
        entries: Sequence[TravelEntry],
        display_name: str,
        month: str,
        template: bytes | None = None,
    ) -> ExportArtifact:
        workbook = self._open_template(template)
        sheet = self._worksheet(workbook)

        self._map_header(sheet, display_name)
        self._clear_entries(sheet)
        if len(entries) > self.capacity:
            raise CapacityExceeded(self.capacity, len(entries), self.start_row, self.end_row)
        self._map_entries(sheet, entries)

        filename = build_export_filename(display_name, month)
        content = self._serialize(workbook)
        logger.info("Exported %d entries for %s as %r", len(entries), month, filename)
        return ExportArtifact(content=content, filename=filename)

    def _open_template(self, template: bytes | None) -> Workbook:
        try:
            if template is not None:
                return load_workbook(BytesIO(template))
            if self.template_path is not None:
                return load_workbook(self.template_path)
        except (OSError, zipfile.BadZipFile, InvalidFileException, KeyError, ValueError) as exc:
            logger.warning("Could not load the Excel template: %s", exc)
            raise ExportError("Could not load the Excel template.") from exc
        return self.build_template()

    def _worksheet(self, workbook: Workbook) -> Worksheet:
        if self.sheet_name in workbook.sheetnames:
            return workbook[self.sheet_name]
        if workbook.worksheets:
            return workbook.worksheets[0]
        raise ExportError("Template worksheet not found.")

    def _map_header(self, sheet: Worksheet, display_name: str) -> None:
        sheet[self.mapping["header"]["display_name"]] = display_name

    def _clear_entries(self, sheet: Worksheet) -> None:
        for row in range(self.start_row, self.end_row + 1):
            for column in self.columns.values():
                sheet[f"{column}{row}"].value = None

    def _map_entries(self, sheet: Worksheet, entries: Sequence[TravelEntry]) -> None:
        for offset, entry in enumerate(entries):
            row = self.start_row + offset
            entry_date = parse_iso_date(entry.entry_date)
            values = {
                "entry_date": entry_date if entry_date else entry.entry_date,
                "trip": entry.trip,
                "miles": float(entry.miles),
                "purpose": entry.purpose,
            }
            for key, column in self.columns.items():
                cell = sheet[f"{column}{row}"]
                cell.value = values.get(key)
                if key in self.number_formats:
                    cell.number_format = self.number_formats[key]

    @staticmethod
    def _serialize(workbook: Workbook) -> bytes:
        buffer = BytesIO()
        try:
            workbook.save(buffer)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Could not serialize the export: %s", exc)
            raise ExportError("Unable to generate the Excel file. Please try again.") from exc
        return buffer.getvalue()

    def build_template(self) -> Workbook:
        """Create the standard blank template described by the mapping file."""
        layout = self.mapping.get("template", {})
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = self.sheet_name

        headings_row = layout.get("headings_row", self.start_row - 1)
        for column, heading in layout.get("headings", {}).items():
            sheet[f"{column}{headings_row}"] = heading
        for column, width in layout.get("column_widths", {}).items():
            sheet.column_dimensions[column].width = width
        if layout.get("freeze_panes"):
            sheet.freeze_panes = layout["freeze_panes"]

        return workbook

    def template_bytes(self) -> bytes:
        return self._serialize(self.build_template())


def read_cells(source: bytes | Path | str, cells: list[str], sheet_name: str) -> dict[str, Any]:
    """Utility for validation/testing: read exact cell values from an exported workbook."""
    workbook = load_workbook(BytesIO(source) if isinstance(source, bytes) else source, data_only=False)
    sheet = workbook[sheet_name]
    return {cell: sheet[cell].value for cell in cells}


def read_entry_rows(service: MileageExportService, content: bytes) -> list[tuple[Any, ...]]:
    """Read the data block back as (date, trip, miles, purpose) tuples, skipping empty rows."""
    workbook = load_workbook(BytesIO(content))
    sheet = service._worksheet(workbook)
    rows: list[tuple[Any, ...]] = []
    for row in range(service.start_row, service.end_row + 1):
        values = tuple(sheet[f"{service.columns[field]}{row}"].value for field in ENTRY_FIELDS)
        if any(value is not None for value in values):
            rows.append(values)
    return rows
