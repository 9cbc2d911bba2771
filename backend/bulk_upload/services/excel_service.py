import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from ..schemas.question_schema import ParsedQuestion


logger = logging.getLogger("excel_service")
logger.setLevel(logging.INFO)

# Header spellings accepted for every canonical field. Matching ignores case,
# underscores and spaces, so "Question ID" and "question_id" are the same header.
REFERENCE_ID_HEADERS = ["question_id", "reference_id"]
FIELD_HEADERS: Dict[str, List[str]] = {
    "reference_id": REFERENCE_ID_HEADERS,
    "tag": ["tag", "sat_tag", "category"],
    "difficulty": ["difficulty"],
    "instructions": ["instructions", "instruction", "passage"],
    "question_text": ["question_text", "question"],
    "answer_a": ["answer_a", "option_a", "option_1"],
    "answer_b": ["answer_b", "option_b", "option_2"],
    "answer_c": ["answer_c", "option_c", "option_3"],
    "answer_d": ["answer_d", "option_d", "option_4"],
    "correct_answer": ["correct_answer"],
    "explanation": ["explanation", "solution"],
}
TEXT_FIELDS = [
    "instructions",
    "question_text",
    "answer_a",
    "answer_b",
    "answer_c",
    "answer_d",
    "explanation",
]
CSV_EXTENSIONS = {".csv"}
# xlrd reads legacy .xls, odfpy reads .ods
EXCEL_ENGINES = {".xls": "xlrd", ".ods": "odf"}

_HEADER_NOISE = re.compile(r"[\s_]+")
_LINE_EDGES = re.compile(r"^[\t ]+|[\t ]+(?=\r?$)", re.MULTILINE)


class SpreadsheetFormatError(ValueError):
    """The uploaded file cannot be turned into questions. Nothing was written."""

    def __init__(self, message: str, headers: Optional[List[str]] = None, skipped: int = 0):
        super().__init__(message)
        self.headers = headers or []
        self.skipped = skipped


@dataclass
class ParseResult:
    questions: List[ParsedQuestion] = field(default_factory=list)
    skipped: int = 0
    headers: List[str] = field(default_factory=list)


def normalize_header(name: Any) -> str:
    return _HEADER_NOISE.sub("", str(name)).lower()


def get_value(row: Mapping[str, Any], primary: str, fallbacks: Iterable[str] = ()) -> str:
    """Return the first non-empty cell whose header matches `primary`, then each fallback in turn."""
    normalized: Dict[str, List[Any]] = {}
    for key, value in row.items():
        normalized.setdefault(normalize_header(key), []).append(value)

    for name in [primary, *fallbacks]:
        for value in normalized.get(normalize_header(name), []):
            if value is None:
                continue
            text = str(value)
            if text:
                return text
    return ""


def trim_preserve_linebreaks(text: str) -> str:
    # strips spaces and tabs at both ends of every line, \n and \r\n line breaks stay
    return _LINE_EDGES.sub("", text)


def convert_frac_to_display_frac(text: str) -> str:
    return text.replace("\\frac", "\\dfrac")


def clean_text(text: str) -> str:
    return convert_frac_to_display_frac(trim_preserve_linebreaks(text))


def normalize_difficulty(value: str) -> str:
    # only the first "hard" is rewritten, so "very hard" becomes "very intense"
    difficulty = (value or "medium").lower().strip()
    return difficulty.replace("hard", "intense", 1)


def _lookup(row: Mapping[str, Any], field_name: str) -> str:
    primary, *fallbacks = FIELD_HEADERS[field_name]
    return get_value(row, primary, fallbacks)


def _describe_headers(headers: List[str]) -> str:
    return ", ".join(headers) if headers else "(none)"


def validate_headers(headers: List[str], row_count: int) -> None:
    """
    Reject a file before any row is parsed.

    The file needs at least one data row and a question id column
    (question_id or reference_id, in any spelling).
    """
    if row_count == 0:
        raise SpreadsheetFormatError(
            f"The file contains no data rows. Detected headers: {_describe_headers(headers)}",
            headers=headers,
        )

    accepted = {normalize_header(h) for h in REFERENCE_ID_HEADERS}
    if not any(normalize_header(h) in accepted for h in headers):
        raise SpreadsheetFormatError(
            "Column not found: question_id. The file must contain a question_id or reference_id column. "
            f"Detected headers: {_describe_headers(headers)}",
            headers=headers,
        )


def parse_row(row: Mapping[str, Any]) -> Optional[ParsedQuestion]:
    """Return None for a row without a question id."""
    reference_id = _lookup(row, "reference_id").strip()
    if not reference_id:
        return None

    values = {name: clean_text(_lookup(row, name)) for name in TEXT_FIELDS}
    return ParsedQuestion(
        reference_id=reference_id,
        tag=_lookup(row, "tag").strip(),
        difficulty=normalize_difficulty(_lookup(row, "difficulty")),
        correct_answer=_lookup(row, "correct_answer").strip().upper(),
        **values,
    )


def parse_rows(rows: List[Mapping[str, Any]], headers: Optional[List[str]] = None) -> ParseResult:
    if headers is None:
        headers = [str(key) for key in rows[0].keys()] if rows else []

    validate_headers(headers, len(rows))

    result = ParseResult(headers=headers)
    for row in rows:
        parsed = parse_row(row)
        if parsed is None:
            result.skipped += 1
            continue
        result.questions.append(parsed)

    if not result.questions:
        raise SpreadsheetFormatError(
            f"No valid questions found: all {result.skipped} rows have an empty question id. "
            f"Detected headers: {_describe_headers(headers)}",
            headers=headers,
            skipped=result.skipped,
        )

    if result.skipped:
        logger.info("Skipped %s rows without a question id", result.skipped)
    return result


def read_rows(file, filename: Optional[str] = None) -> tuple[List[str], List[Dict[str, str]]]:
    # every cell comes back as a string, empty cells as ""
    extension = os.path.splitext(filename)[1].lower() if filename else ""
    try:
        if extension in CSV_EXTENSIONS:
            df = pd.read_csv(file, dtype=str, keep_default_na=False)
        else:
            df = pd.read_excel(file, engine=EXCEL_ENGINES.get(extension), dtype=str, keep_default_na=False)
    except Exception as e:
        logger.error("Error reading spreadsheet %s: %s", filename, e)
        raise SpreadsheetFormatError(f"Could not read spreadsheet: {e}") from e

    df = df.fillna("")
    headers = [str(c) for c in df.columns]
    df.columns = headers
    return headers, df.to_dict(orient="records")


def parse_excel(file, filename: Optional[str] = None) -> ParseResult:
    headers, rows = read_rows(file, filename)
    return parse_rows(rows, headers)
