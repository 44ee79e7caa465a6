"""
Workbook - Rendering del confronto DHCP in un file Excel (.xlsx)
"""

from typing import List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .dhcp_compare import (
    DhcpComparison, ComparisonRow, SECTIONS,
    STATUS_SAME, STATUS_DIFFERENT, STATUS_ONLY_A, STATUS_ONLY_B
)


SHEET_TITLES = {
    "server_settings": "Impostazioni server",
    "server_options": "Opzioni server",
    "classes": "Classi",
    "option_definitions": "Definizioni opzioni",
    "scopes": "Scope",
    "scope_options": "Opzioni scope",
    "exclusions": "Esclusioni",
    "reservations": "Prenotazioni",
}

STATUS_LABELS = {
    STATUS_SAME: "Uguale",
    STATUS_DIFFERENT: "Diverso",
    STATUS_ONLY_A: "Solo A",
    STATUS_ONLY_B: "Solo B",
}

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="1A365D", end_color="1A365D", fill_type="solid")

STATUS_FILLS = {
    STATUS_DIFFERENT: PatternFill(start_color="FFF3CD", end_color="FFF3CD", fill_type="solid"),
    STATUS_ONLY_A: PatternFill(start_color="F8D7DA", end_color="F8D7DA", fill_type="solid"),
    STATUS_ONLY_B: PatternFill(start_color="D1ECF1", end_color="D1ECF1", fill_type="solid"),
}
DIFF_CELL_FONT = Font(bold=True, color="DC3545")

MAX_COLUMN_WIDTH = 60


def _style_header(ws, columns: int):
    for col in range(1, columns + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"


def _adjust_widths(ws):
    """Larghezza colonne in base al contenuto"""
    for col_idx, column in enumerate(ws.columns, start=1):
        max_length = 0
        for cell in column:
            if cell.value is not None:
                longest = max(len(line) for line in str(cell.value).split("\n"))
                max_length = max(max_length, longest)
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max_length + 2, MAX_COLUMN_WIDTH)


def _write_section(ws, rows: List[ComparisonRow], server_a: str, server_b: str):
    headers = ["Oggetto", "Impostazione", server_a, server_b, "Stato"]
    ws.append(headers)
    _style_header(ws, len(headers))

    for row in rows:
        ws.append([
            row.key,
            row.attribute,
            row.value_a,
            row.value_b,
            STATUS_LABELS.get(row.status, row.status),
        ])
        excel_row = ws.max_row
        fill = STATUS_FILLS.get(row.status)
        if fill:
            for col in range(1, len(headers) + 1):
                ws.cell(row=excel_row, column=col).fill = fill
        if row.status == STATUS_DIFFERENT:
            ws.cell(row=excel_row, column=3).font = DIFF_CELL_FONT
            ws.cell(row=excel_row, column=4).font = DIFF_CELL_FONT

    if rows:
        ws.auto_filter.ref = ws.dimensions
    _adjust_widths(ws)


def _write_summary(ws, comparison: DhcpComparison):
    ws.append(["Server A", comparison.server_a])
    ws.append(["Server B", comparison.server_b])
    ws.append([])
    headers = ["Sezione"] + [STATUS_LABELS[s] for s in
                             (STATUS_SAME, STATUS_DIFFERENT, STATUS_ONLY_A, STATUS_ONLY_B)]
    ws.append(headers)
    header_row = ws.max_row
    for col in range(1, len(headers) + 1):
        cell = ws.cell(row=header_row, column=col)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL

    for section, counts in comparison.get_summary().items():
        ws.append([
            SHEET_TITLES[section],
            counts.get(STATUS_SAME, 0),
            counts.get(STATUS_DIFFERENT, 0),
            counts.get(STATUS_ONLY_A, 0),
            counts.get(STATUS_ONLY_B, 0),
        ])
    ws["A1"].font = Font(bold=True)
    ws["A2"].font = Font(bold=True)
    _adjust_widths(ws)


def write_comparison_workbook(
    comparison: DhcpComparison,
    output_path: str,
    only_differences: bool = False
) -> str:
    """
    Scrive il confronto in un file xlsx: un foglio di riepilogo
    e un foglio per sezione.

    Args:
        comparison: Risultato di DhcpComparer.compare()
        output_path: Percorso del file xlsx
        only_differences: Omette le righe uguali

    Returns:
        Percorso del file generato
    """
    wb = Workbook()
    summary_ws = wb.active
    summary_ws.title = "Riepilogo"
    _write_summary(summary_ws, comparison)

    for section in SECTIONS:
        rows = comparison.section(section)
        if only_differences:
            rows = [r for r in rows if r.status != STATUS_SAME]
        ws = wb.create_sheet(title=SHEET_TITLES[section])
        _write_section(ws, rows, comparison.server_a, comparison.server_b)

    wb.save(output_path)
    return output_path
