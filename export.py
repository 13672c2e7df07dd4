from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from observability import get_logger

log = get_logger("export")

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIME = "application/pdf"


@dataclass(frozen=True)
class TabularDataset:
    columns: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...] = field(default_factory=tuple)

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _safe_str(v: Any) -> str:
    return "" if v is None else str(v)


def export_xlsx(dataset: TabularDataset, metadata: dict[str, Any] | None = None) -> bytes:
    """Hoja "Datos" con encabezado + una fila por registro; hoja "Info" con metadata."""
    metadata = dict(metadata or {})

    wb = Workbook()
    ws = wb.active
    ws.title = "Datos"

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill("solid", fgColor="2F5597")

    ws.append(list(dataset.columns))
    for col in range(1, len(dataset.columns) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center")

    for row in dataset.rows:
        ws.append(list(row))

    info = wb.create_sheet("Info")
    info.append(["Generado", metadata.pop("generated_at", None) or _now_iso()])
    info.append(["Filas", dataset.row_count])
    for key, value in metadata.items():
        info.append([str(key), _safe_str(value)])
    info["A1"].font = Font(bold=True)
    info.column_dimensions["A"].width = 24
    info.column_dimensions["B"].width = 40

    buf = io.BytesIO()
    wb.save(buf)
    log.info("export_generated", format="xlsx", rows=dataset.row_count)
    return buf.getvalue()


def export_pdf(dataset: TabularDataset, metadata: dict[str, Any] | None = None) -> bytes:
    """Documento paginado; la tabla repite el encabezado en cada página."""
    metadata = dict(metadata or {})

    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=letter, title=_safe_str(metadata.get("title")) or "Reporte")
    styles = getSampleStyleSheet()

    story = [
        Paragraph(_safe_str(metadata.get("title")) or "Reporte", styles["Heading1"]),
        Paragraph(f"Generado: {metadata.get('generated_at') or _now_iso()}", styles["Normal"]),
    ]
    for key, value in metadata.items():
        if key in ("title", "generated_at"):
            continue
        story.append(Paragraph(f"{key}: {_safe_str(value)}", styles["Normal"]))
    story.append(Spacer(1, 0.25 * inch))

    data = [list(dataset.columns)] + [[_safe_str(v) for v in row] for row in dataset.rows]
    table = Table(data, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2F5597")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ]))
    story.append(table)

    doc.build(story)
    log.info("export_generated", format="pdf", rows=dataset.row_count)
    return buf.getvalue()


EXPORTERS = {
    "xlsx": (export_xlsx, XLSX_MIME),
    "pdf": (export_pdf, PDF_MIME),
}
