import csv
import io
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from journeymap.core.entities import EntityGraph
from journeymap.core.exceptions import NotFoundError
from journeymap.services.health import phase_health_for
from journeymap.services.ordering import get_ordered_rows, ordered_phases
from journeymap.services.text_codec import OpportunityItem, serialize_opportunity_items

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
LABEL_FONT = Font(bold=True)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def _cell_text(graph: EntityGraph, phase, row, phase_opps, phase_jobs) -> str:
    if row.is_custom:
        return (phase.custom_row_values.get(row.id) or "").strip()
    if row.key == "phaseHealth":
        return str(phase_health_for(graph, phase))
    if row.key == "opportunities":
        return serialize_opportunity_items([
            OpportunityItem(id=o.name, name=o.name, tag=o.priority, description="",
                            point_of_differentiation="", critical_assumptions="")
            for o in phase_opps
        ])
    if row.key == "customerJobs":
        return "\n".join(j.name for j in phase_jobs)

    attr = "".join("_" + c.lower() if c.isupper() else c for c in row.key)
    value = getattr(phase, attr, None)
    if isinstance(value, list):
        return "\n".join(str(v) for v in value)
    return "" if value is None else str(value)


def journey_map_table(graph: EntityGraph, journey_id: str) -> list[list[str]]:
    """Phases x rows grid of a journey: header row, then one row per journey row."""
    journey = graph.get("journeys", journey_id)
    if journey is None:
        raise NotFoundError(resource="Journey", resource_id=journey_id)

    phases = ordered_phases(graph, journey_id)
    jobs_by_id = {j.id: j for j in graph.jobs}
    table = [["Phase", *[p.title or "Untitled" for p in phases]]]
    for row in get_ordered_rows(journey):
        cells = [row.label]
        for phase in phases:
            phase_opps = [o for o in graph.opportunities if o.phase_id == phase.id]
            phase_jobs = [jobs_by_id[jid] for jid in phase.job_ids if jid in jobs_by_id]
            cells.append(_cell_text(graph, phase, row, phase_opps, phase_jobs))
        table.append(cells)
    return table


def build_journey_map_csv(graph: EntityGraph, journey_id: str) -> str:
    """Journey map as CSV text (CRLF row separator, RFC 4180 quoting)."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\r\n")
    writer.writerows(journey_map_table(graph, journey_id))
    return buf.getvalue()


def build_journey_map_xlsx(graph: EntityGraph, journey_id: str) -> bytes:
    """Journey map as a single-sheet workbook with a styled header row."""
    table = journey_map_table(graph, journey_id)
    journey = graph.get("journeys", journey_id)

    wb = Workbook()
    ws = wb.active
    ws.title = (journey.name or "Journey map")[:31]

    for r, values in enumerate(table, 1):
        for c, value in enumerate(values, 1):
            cell = ws.cell(row=r, column=c, value=value)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(wrap_text=True, vertical="top")
            if r == 1:
                cell.fill = HEADER_FILL
                cell.font = HEADER_FONT
            elif c == 1:
                cell.font = LABEL_FONT

    ws.column_dimensions["A"].width = 24
    for c in range(2, len(table[0]) + 1):
        ws.column_dimensions[get_column_letter(c)].width = 36
    ws.freeze_panes = "B2"

    buf = io.BytesIO()
    wb.save(buf)
    logger.info("Exported journey %s to xlsx (%d rows)", journey_id, len(table) - 1)
    return buf.getvalue()
