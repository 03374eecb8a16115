from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

Column = Tuple[str, str]  # (clé, en-tête)


def finite(value: Any) -> float:
    """NaN / Infinity -> 0 : un JSON ne doit jamais en contenir."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def clean(obj: Any, ndigits: int = 2) -> Any:
    """
    Prépare un résultat de calcul pour le JSON : arrondi des flottants,
    dates en ISO, tuples en listes.
    """
    if isinstance(obj, bool) or obj is None or isinstance(obj, str):
        return obj
    if isinstance(obj, int):
        return obj
    if isinstance(obj, float):
        return round(finite(obj), ndigits)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: clean(v, ndigits) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [clean(v, ndigits) for v in obj]
    return obj


def inline_summary(rows: Sequence[Dict[str, Any]], summary: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Lignes + ligne de synthèse marquée (TOTAL / moyenne) pour l'affichage tabulaire."""
    out = [dict(r) for r in rows]
    if summary:
        out.append({**summary, "is_total": True, "bold": True})
    return out


# ---------------------------
# Export Excel
# ---------------------------

def _cell(value: Any) -> Any:
    if isinstance(value, bool):
        return "Oui" if value else "Non"
    if isinstance(value, float):
        return round(finite(value), 2)
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return ", ".join(f"{k}: {v}" for k, v in value.items())
    return value


def safe_sheet_title(name: str, fallback: str = "Statistiques") -> str:
    """Openpyxl: max 31 chars, no [ ] * ? / \\ etc."""
    bad = set('[]:*?/\\')
    cleaned = "".join(c for c in (name or "") if c not in bad).strip()
    return cleaned[:31] if cleaned else fallback


def build_workbook(title: str, columns: Sequence[Column], rows: Sequence[Dict[str, Any]], subtitle: str = "") -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = safe_sheet_title(title)

    bold = Font(bold=True)

    ws.append([title])
    ws.cell(row=1, column=1).font = bold
    if subtitle:
        ws.append([subtitle])
    ws.append([])

    ws.append([header for _, header in columns])
    header_row = ws.max_row
    for col_idx in range(1, len(columns) + 1):
        ws.cell(row=header_row, column=col_idx).font = bold

    for r in rows:
        ws.append([_cell(r.get(key)) for key, _ in columns])
        if r.get("is_total") or r.get("bold"):
            for col_idx in range(1, len(columns) + 1):
                ws.cell(row=ws.max_row, column=col_idx).font = bold

    for col_idx in range(1, len(columns) + 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = 28 if col_idx == 1 else 16

    return wb
