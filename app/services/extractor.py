# =============================================================================
# Format Extractor - PDF, Spreadsheet and Plain-Text Normalisation
# =============================================================================
#
# One stable function per format:
#
#   extract_pdf_text(data)                  → Docling text layer
#   extract_spreadsheet_text(data, verbose) → pandas (openpyxl / xlrd)
#   extract_plain_text(data)                → UTF-8 decode
#
# None of them raise. A failure is logged and reported as "" so one bad file
# never aborts an ingestion run.
#
# LIBRARY CALL SHAPES:
# Docling and pandas both expose more than one way in (stream vs. path,
# read_excel vs. ExcelFile.parse, export_to_text vs. export_to_markdown).
# Each public function walks an ordered list of invocation styles through
# _first_success() and only gives up when every style has failed.
# =============================================================================

from __future__ import annotations

import enum
import logging
import math
import re
import tempfile
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from io import BytesIO
from pathlib import Path
from typing import TypeVar

import pandas as pd
from docling.datamodel.base_models import DocumentStream, InputFormat
from docling.datamodel.pipeline_options import PdfPipelineOptions
from docling.document_converter import DocumentConverter, PdfFormatOption

from app.services.errors import UnsupportedFileType

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FileFormat(str, enum.Enum):
    PDF = "pdf"
    SPREADSHEET = "spreadsheet"
    TEXT = "text"


SUPPORTED_EXTENSIONS: dict[str, FileFormat] = {
    ".pdf": FileFormat.PDF,
    ".xlsx": FileFormat.SPREADSHEET,
    ".xls": FileFormat.SPREADSHEET,
    ".txt": FileFormat.TEXT,
    ".md": FileFormat.TEXT,
}

# Markers PDF text exports leave between pages.
_PAGE_BREAK_RE = re.compile(
    r"Page \(\d+\) Break|<!--\s*page[ _-]?break\s*-->|\f",
    re.IGNORECASE,
)
_WHITESPACE_RE = re.compile(r"\s+")
_INLINE_WHITESPACE_RE = re.compile(r"[^\S\n]+")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def detect_format(filename: str) -> FileFormat | None:
    """Map a file name to its format by extension (case-insensitive)."""
    return SUPPORTED_EXTENSIONS.get(Path(filename).suffix.lower())


def normalize_whitespace(text: str, preserve_lines: bool = False) -> str:
    """
    Collapse whitespace runs to single spaces and trim.

    With preserve_lines=True, newlines survive (one per line, blank lines
    dropped) so spreadsheet sheet/row markers stay readable.
    """
    if not preserve_lines:
        return _WHITESPACE_RE.sub(" ", text).strip()

    lines = (_INLINE_WHITESPACE_RE.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def _first_success(label: str, attempts: Sequence[tuple[str, Callable[[], T]]]) -> T:
    """
    Run each (style, call) in order and return the first result.

    Raises the last error when every style fails.
    """
    last_error: Exception | None = None
    for style, call in attempts:
        try:
            return call()
        except Exception as exc:
            logger.debug("%s: invocation style '%s' failed: %s", label, style, exc)
            last_error = exc
    raise RuntimeError(f"{label}: all invocation styles failed") from last_error


# ---------------------------------------------------------------------------
# PDF - Docling Converter (Lazy Singleton)
# ---------------------------------------------------------------------------
# Initialisation loads layout models (~2-5 seconds on first use); the
# converter is created once and reused.
# ---------------------------------------------------------------------------

_converter: DocumentConverter | None = None
_converter_lock = threading.Lock()


def _get_converter() -> DocumentConverter:
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    if _converter is not None:
        return _converter

    # Reached from worker threads (asyncio.to_thread); build at most once.
    with _converter_lock:
        if _converter is None:
            logger.info(
                "Initializing Docling DocumentConverter "
                "(first use, may take a few seconds)..."
            )

            # Text layer only: no OCR, no table structure model.
            pipeline_options = PdfPipelineOptions()
            pipeline_options.do_ocr = False
            pipeline_options.do_table_structure = False

            _converter = DocumentConverter(
                format_options={
                    InputFormat.PDF: PdfFormatOption(
                        pipeline_options=pipeline_options,
                    ),
                }
            )
            logger.info("Docling DocumentConverter initialized")
    return _converter


def _convert_from_stream(converter: DocumentConverter, data: bytes):
    source = DocumentStream(name="document.pdf", stream=BytesIO(data))
    return converter.convert(source)


def _convert_from_path(converter: DocumentConverter, data: bytes):
    with tempfile.TemporaryDirectory() as tmp_dir:
        path = Path(tmp_dir) / "document.pdf"
        path.write_bytes(data)
        return converter.convert(str(path))


def _export_text(document: object) -> str:
    """Plain text when the document supports it, markdown otherwise."""
    attempts = []
    for method_name in ("export_to_text", "export_to_markdown"):
        method = getattr(document, method_name, None)
        if callable(method):
            attempts.append((method_name, method))
    text = _first_success("PDF text export", attempts)
    return text if isinstance(text, str) else str(text or "")


def extract_pdf_text(data: bytes) -> str:
    """
    Extract the text layer of a PDF.

    Returns "" (and logs) on any internal error: malformed structure,
    encrypted file, converter failure. Page break markers are removed and
    whitespace is collapsed to single spaces.
    """
    if not data:
        return ""

    try:
        converter = _get_converter()
        result = _first_success(
            "PDF conversion",
            [
                ("stream", lambda: _convert_from_stream(converter, data)),
                ("path", lambda: _convert_from_path(converter, data)),
            ],
        )
        text = _export_text(result.document)
    except Exception as exc:
        logger.error("Error parsing PDF: %s", exc)
        return ""

    text = _PAGE_BREAK_RE.sub(" ", text)
    return normalize_whitespace(text)


# ---------------------------------------------------------------------------
# Spreadsheets - pandas
# ---------------------------------------------------------------------------


def _is_blank(cell: object) -> bool:
    if cell is None:
        return True
    if isinstance(cell, float) and math.isnan(cell):
        return True
    return False


def _cell_to_text(cell: object) -> str:
    # Excel stores every number as a float; 3.0 should read as "3".
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell).strip()


def _row_to_text(row: Iterable[object]) -> str:
    cells = (_cell_to_text(cell) for cell in row if not _is_blank(cell))
    return " ".join(cell for cell in cells if cell)


def rows_to_text(
    sheets: Mapping[str, Iterable[Sequence[object]]],
    verbose: bool = False,
) -> str:
    """
    Render {sheet_name: rows} as text.

    Null cells are skipped, a row's cells are joined with single spaces and
    empty rows contribute nothing. Non-verbose output is one line of rows
    joined by spaces; verbose output emits a "Sheet: <name>" line per sheet
    followed by one line per row.
    """
    if verbose:
        lines: list[str] = []
        for sheet_name, rows in sheets.items():
            lines.append(f"Sheet: {sheet_name}")
            lines.extend(text for text in map(_row_to_text, rows) if text)
        return normalize_whitespace("\n".join(lines), preserve_lines=True)

    row_texts = [
        text
        for rows in sheets.values()
        for text in map(_row_to_text, rows)
        if text
    ]
    return normalize_whitespace(" ".join(row_texts))


def _frame_rows(frame: pd.DataFrame) -> list[list[object]]:
    return [
        [None if pd.isna(cell) else cell for cell in row]
        for row in frame.itertuples(index=False, name=None)
    ]


def _read_with_read_excel(data: bytes) -> dict[str, pd.DataFrame]:
    return pd.read_excel(BytesIO(data), sheet_name=None, header=None)


def _read_with_excel_file(data: bytes) -> dict[str, pd.DataFrame]:
    with pd.ExcelFile(BytesIO(data)) as book:
        return {
            str(name): book.parse(name, header=None)
            for name in book.sheet_names
        }


def extract_spreadsheet_text(data: bytes, verbose: bool = False) -> str:
    """
    Extract every sheet of an xlsx/xls workbook as row-oriented text.

    Returns "" (and logs) when the workbook cannot be read.
    """
    if not data:
        return ""

    try:
        frames = _first_success(
            "Spreadsheet read",
            [
                ("read_excel", lambda: _read_with_read_excel(data)),
                ("ExcelFile", lambda: _read_with_excel_file(data)),
            ],
        )
        sheets = {str(name): _frame_rows(frame) for name, frame in frames.items()}
    except Exception as exc:
        logger.error("Error parsing spreadsheet: %s", exc)
        return ""

    return rows_to_text(sheets, verbose=verbose)


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


def extract_plain_text(data: bytes) -> str:
    """Decode .txt/.md input as UTF-8 (BOM tolerated) and normalise it."""
    return normalize_whitespace(data.decode("utf-8-sig", errors="replace"))


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


def extract_text(data: bytes, filename: str, verbose_spreadsheets: bool = False) -> str:
    """
    Extract normalised text from a payload by its file name.

    Raises:
        UnsupportedFileType: The extension is not pdf/xlsx/xls/txt/md.
    """
    file_format = detect_format(filename)
    if file_format is None:
        raise UnsupportedFileType(filename)

    if file_format is FileFormat.PDF:
        return extract_pdf_text(data)
    if file_format is FileFormat.SPREADSHEET:
        return extract_spreadsheet_text(data, verbose=verbose_spreadsheets)
    return extract_plain_text(data)
