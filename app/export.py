"""
History export for authenticated users (CSV or JSON).
"""
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Optional
import csv
import io
import json

from app.db.repository import QueryRepository, UserRepository
from app.errors import NotFound, ValidationError
from app.logging_config import get_logger

logger = get_logger(__name__)

FORMATS = ("csv", "json")
MAX_RANGE_DAYS = 365
CSV_HEADER = ["Pregunta", "Respuesta", "Resumen Clínico", "Fecha y Hora"]
UTF8_BOM = "\ufeff"
EXPORTED_BY = "Salustia"


@dataclass(frozen=True)
class ExportFile:
    content: str
    content_type: str
    filename: str


def _flatten(text: Optional[str]) -> str:
    if not text:
        return ""
    return text.replace("\r", "").replace("\n", " ")


def _display_timestamp(iso: Optional[str]) -> str:
    if not iso:
        return ""
    return datetime.fromisoformat(iso).strftime("%d/%m/%Y, %H:%M:%S")


def to_csv(queries: List[dict]) -> str:
    """UTF-8 BOM + quoted CSV with Spanish headers; newlines inside fields are flattened."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for query in queries:
        writer.writerow([
            _flatten(query["prompt"]),
            _flatten(query["response"]),
            _flatten(query["summary"]),
            _display_timestamp(query["timestamp"]),
        ])
    return UTF8_BOM + buffer.getvalue()


def to_json(queries: List[dict], user_id: str, from_date: date, to_date: date, now: Optional[datetime] = None) -> str:
    data = {
        "exportInfo": {
            "generatedAt": (now or datetime.now()).isoformat(),
            "userId": user_id,
            "dateRange": {"from": from_date.isoformat(), "to": to_date.isoformat()},
            "totalQueries": len(queries),
            "exportedBy": EXPORTED_BY,
        },
        "queries": [
            {
                "prompt": q["prompt"],
                "response": q["response"],
                "summary": q["summary"],
                "timestamp": q["timestamp"],
            }
            for q in queries
        ],
    }
    return json.dumps(data, ensure_ascii=False, indent=2)


class HistoryExporter:
    def __init__(self, queries: QueryRepository, users: Optional[UserRepository] = None):
        self.queries = queries
        self.users = users

    def export_history(self, user_id: str, from_date: date, to_date: date, fmt: str) -> ExportFile:
        """
        Export a user's queries between two dates (both inclusive), newest first.

        Raises:
            ValidationError: unknown format, inverted range or range over one year
            NotFound: unknown user or no queries in range
        """
        fmt = (fmt or "").lower()
        if fmt not in FORMATS:
            raise ValidationError('Formato no válido. Debe ser "csv" o "json"')
        if from_date > to_date:
            raise ValidationError("Rango de fechas no válido: la fecha inicial debe ser anterior a la final")
        if (to_date - from_date).days > MAX_RANGE_DAYS:
            raise ValidationError("El rango de fechas no puede superar un año")
        if self.users is not None and self.users.get(user_id) is None:
            raise NotFound("Usuario no encontrado")

        start = datetime.combine(from_date, time.min)
        end = datetime.combine(to_date, time.max)
        queries = self.queries.list_history(user_id, start, end)
        if not queries:
            raise NotFound("No hay consultas en el rango indicado")

        logger.info(f"Exporting {len(queries)} queries for {user_id} as {fmt}")
        filename = f"salustia-historial-{from_date.isoformat()}-{to_date.isoformat()}.{fmt}"
        if fmt == "csv":
            return ExportFile(to_csv(queries), "text/csv; charset=utf-8", filename)
        return ExportFile(
            to_json(queries, user_id, from_date, to_date),
            "application/json; charset=utf-8",
            filename,
        )
