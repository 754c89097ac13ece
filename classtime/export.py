import io
import json
from typing import List, Optional, Union

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER, landscape
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from .schemas import GenerationResult

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
ENTRY_COLUMNS = ["classId", "subjectId", "teacherId", "day", "period", "roomId", "pinned"]
EXPORT_FORMATS = ("json", "csv", "html", "pdf")


def day_label(day: int) -> str:
    return DAY_NAMES[day - 1] if 1 <= day <= len(DAY_NAMES) else f"Day {day}"


def entries_frame(result: GenerationResult) -> pd.DataFrame:
    rows = [e.model_dump(by_alias=True) for e in result.entries]
    return pd.DataFrame(rows, columns=ENTRY_COLUMNS)


def _cell(row) -> str:
    text = f"{row['subjectId']} ({row['teacherId']})"
    if row["roomId"]:
        text += f" @{row['roomId']}"
    return text


def class_grid(frame: pd.DataFrame, class_id: str, days: int, periods: int) -> pd.DataFrame:
    """Period-by-day table of one class; empty cells are blank strings."""
    grid = pd.DataFrame(
        "",
        index=pd.Index([f"Period {p}" for p in range(1, periods + 1)], name="Period"),
        columns=[day_label(d) for d in range(1, days + 1)],
    )
    for _, row in frame[frame["classId"] == class_id].iterrows():
        if 1 <= row["day"] <= days and 1 <= row["period"] <= periods:
            grid.iat[row["period"] - 1, row["day"] - 1] = _cell(row)
    return grid


def _grid_size(frame: pd.DataFrame, days: Optional[int], periods: Optional[int]):
    if days is None:
        days = max(5, int(frame["day"].max())) if len(frame) else 5
    if periods is None:
        periods = max(1, int(frame["period"].max())) if len(frame) else 8
    return days, periods


def _class_ids(frame: pd.DataFrame) -> List[str]:
    return sorted(frame["classId"].unique().tolist())


def export_html(result: GenerationResult, days: Optional[int] = None, periods: Optional[int] = None) -> str:
    frame = entries_frame(result)
    days, periods = _grid_size(frame, days, periods)
    parts = [f"<h1>Timetable ({result.state})</h1>"]
    for class_id in _class_ids(frame):
        parts.append(f"<h2>Class {class_id}</h2>")
        parts.append(class_grid(frame, class_id, days, periods).to_html(border=1))
    if result.unplaced_obligation_hours:
        unplaced = pd.DataFrame([u.model_dump(by_alias=True) for u in result.unplaced_obligation_hours])
        parts.append("<h2>Unplaced hours</h2>")
        parts.append(unplaced.to_html(index=False, border=1))
    return "\n".join(parts)


def _canvas_header(c: canvas.Canvas, title: str, width: float, height: float):
    c.setFont("Helvetica-Bold", 14)
    c.drawString(0.6 * inch, height - 0.6 * inch, title)
    c.setStrokeColor(colors.black)
    c.line(0.6 * inch, height - 0.7 * inch, width - 0.6 * inch, height - 0.7 * inch)


def export_pdf(result: GenerationResult, days: Optional[int] = None, periods: Optional[int] = None) -> bytes:
    """One landscape page per class with its period-by-day grid."""
    frame = entries_frame(result)
    days, periods = _grid_size(frame, days, periods)
    buf = io.BytesIO()
    width, height = landscape(LETTER)
    c = canvas.Canvas(buf, pagesize=(width, height))

    class_ids = _class_ids(frame)
    if not class_ids:
        _canvas_header(c, f"Timetable ({result.state})", width, height)
        c.setFont("Helvetica", 10)
        c.drawString(0.6 * inch, height - 1.0 * inch, "No entries.")

    left = 0.6 * inch
    label_w = 0.8 * inch
    col_w = (width - 2 * left - label_w) / days
    top = height - 1.0 * inch
    row_h = min(0.6 * inch, (top - 0.6 * inch) / (periods + 1))
    max_chars = max(4, int(col_w / 4.2))

    for n, class_id in enumerate(class_ids):
        if n:
            c.showPage()
        _canvas_header(c, f"Timetable: class {class_id} ({result.state})", width, height)
        grid = class_grid(frame, class_id, days, periods)
        c.setStrokeColor(colors.grey)
        c.setFont("Helvetica-Bold", 8)
        for d, label in enumerate(grid.columns):
            x = left + label_w + d * col_w
            c.rect(x, top - row_h, col_w, row_h)
            c.drawString(x + 3, top - row_h + 4, label)
        for p in range(periods):
            y = top - (p + 2) * row_h
            c.setFont("Helvetica-Bold", 8)
            c.rect(left, y, label_w, row_h)
            c.drawString(left + 3, y + 4, f"P{p + 1}")
            c.setFont("Helvetica", 7)
            for d in range(days):
                x = left + label_w + d * col_w
                c.rect(x, y, col_w, row_h)
                text = grid.iat[p, d]
                if text:
                    c.drawString(x + 3, y + 4, text[:max_chars])
    c.save()
    return buf.getvalue()


def export_timetable(result: GenerationResult, fmt: str = "json", days: Optional[int] = None,
                     periods: Optional[int] = None) -> Union[str, bytes]:
    fmt = (fmt or "").lower()
    if fmt == "json":
        return json.dumps(result.to_json_dict(), indent=2)
    if fmt == "csv":
        return entries_frame(result).to_csv(index=False)
    if fmt == "html":
        return export_html(result, days, periods)
    if fmt == "pdf":
        return export_pdf(result, days, periods)
    raise ValueError(f"Unsupported export format: {fmt}")
