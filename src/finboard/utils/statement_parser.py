"""Parsers for bank statement files (CSV and OFX)."""

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

from finboard.domain.errors import ImportRowError, ValidationError
from finboard.utils.amount_parser import parse_amount
from finboard.utils.date_parser import parse_date

DATE_COLUMNS = ("data", "date")
AMOUNT_COLUMNS = ("valor", "amount", "value")
DESCRIPTION_COLUMNS = ("descrição", "descricao", "description", "histórico", "historico", "memo")
ID_COLUMNS = ("id", "fitid", "documento", "reference")


@dataclass(frozen=True)
class StatementRow:
    """One raw row of an external statement."""

    row_number: int
    date: date
    amount: Decimal
    description: str
    external_id: Optional[str] = None


@dataclass
class ParsedStatement:
    """Rows read from a file plus the rows that could not be read."""

    source: str
    rows: list[StatementRow] = field(default_factory=list)
    errors: list[ImportRowError] = field(default_factory=list)


def _find_column(fieldnames: list[str], candidates: tuple[str, ...]) -> Optional[str]:
    for name in fieldnames:
        if name is not None and name.strip().lower() in candidates:
            return name
    return None


def parse_csv(content: str) -> ParsedStatement:
    """Parse a tab-, semicolon- or comma-separated statement.

    The header must name a date, an amount and a description column
    (``Data``/``Valor``/``Descrição`` or ``Date``/``Amount``/``Description``).
    Dates are read day-first.

    Raises:
        ValidationError: If the file has no header or misses a required column
    """
    content = content.lstrip("\ufeff")
    first_line = content.splitlines()[0] if content.strip() else ""
    if "\t" in first_line:
        delimiter = "\t"
    elif ";" in first_line:
        delimiter = ";"
    else:
        delimiter = ","

    reader = csv.DictReader(io.StringIO(content), delimiter=delimiter)
    fieldnames = reader.fieldnames
    if not fieldnames:
        raise ValidationError("CSV file has no columns")

    date_col = _find_column(fieldnames, DATE_COLUMNS)
    amount_col = _find_column(fieldnames, AMOUNT_COLUMNS)
    description_col = _find_column(fieldnames, DESCRIPTION_COLUMNS)
    id_col = _find_column(fieldnames, ID_COLUMNS)
    missing = [
        label
        for label, col in (("date", date_col), ("amount", amount_col), ("description", description_col))
        if col is None
    ]
    if missing:
        raise ValidationError(f"CSV file missing required columns: {', '.join(missing)}")

    parsed = ParsedStatement(source="csv")
    for row_num, row in enumerate(reader, start=2):  # Start at 2 (header is row 1)
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue
        date_str = (row.get(date_col) or "").strip()
        amount_str = (row.get(amount_col) or "").strip()
        if not date_str:
            parsed.errors.append(ImportRowError(row_num, "Missing date"))
            continue
        if not amount_str:
            parsed.errors.append(ImportRowError(row_num, "Missing amount"))
            continue
        try:
            txn_date = parse_date(date_str, dayfirst=True)
            amount = parse_amount(amount_str)
        except ValueError as e:
            parsed.errors.append(ImportRowError(row_num, str(e)))
            continue
        parsed.rows.append(
            StatementRow(
                row_number=row_num,
                date=txn_date,
                amount=amount,
                description=(row.get(description_col) or "").strip(),
                external_id=(row.get(id_col) or "").strip() or None if id_col else None,
            )
        )
    return parsed


_OFX_BLOCK = re.compile(r"<STMTTRN>(.*?)(?:</STMTTRN>|(?=<STMTTRN>)|(?=</BANKTRANLIST>)|\Z)", re.S | re.I)


def _ofx_field(block: str, tag: str) -> Optional[str]:
    match = re.search(rf"<{tag}>([^<\r\n]*)", block, re.I)
    if match is None:
        return None
    return match.group(1).strip() or None


def parse_ofx(content: str) -> ParsedStatement:
    """Parse the ``<STMTTRN>`` blocks of an OFX (SGML or XML) statement.

    Uses ``DTPOSTED`` (``YYYYMMDD`` prefix), ``TRNAMT``, ``MEMO`` falling back
    to ``NAME``, and ``FITID``.
    """
    parsed = ParsedStatement(source="ofx")
    for row_num, match in enumerate(_OFX_BLOCK.finditer(content), start=1):
        block = match.group(1)
        posted = _ofx_field(block, "DTPOSTED")
        amount_str = _ofx_field(block, "TRNAMT")
        if posted is None or len(posted) < 8:
            parsed.errors.append(ImportRowError(row_num, "Missing or invalid DTPOSTED"))
            continue
        if amount_str is None:
            parsed.errors.append(ImportRowError(row_num, "Missing TRNAMT"))
            continue
        try:
            txn_date = date(int(posted[0:4]), int(posted[4:6]), int(posted[6:8]))
            amount = parse_amount(amount_str)
        except ValueError as e:
            parsed.errors.append(ImportRowError(row_num, str(e)))
            continue
        parsed.rows.append(
            StatementRow(
                row_number=row_num,
                date=txn_date,
                amount=amount,
                description=_ofx_field(block, "MEMO") or _ofx_field(block, "NAME") or "",
                external_id=_ofx_field(block, "FITID"),
            )
        )
    return parsed


def parse_statement_file(path: str) -> ParsedStatement:
    """Parse a statement file, choosing the parser from its extension.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Statement file not found: {path}")
    content = file_path.read_text(encoding="utf-8-sig", errors="replace")
    if file_path.suffix.lower() == ".ofx" or "<OFX>" in content.upper():
        return parse_ofx(content)
    return parse_csv(content)
