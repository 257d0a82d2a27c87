import io
import math
import re
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from loguru import logger
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from app.records import NUMERIC_FIELDS, build_record, primary_key_field
from app.state import ParsedFile
from ingestion.header_normalizer import normalize_headers
from ingestion.type_detector import detect_file_type

SUPPORTED_SUFFIXES = {".csv", ".xlsx"}

# "file_type" is the record discriminator; a source column with that name is kept under this one.
SOURCE_FILE_TYPE_FIELD = "source_file_type"

# "1,250.50" but not the decimal comma in "12,50".
_THOUSANDS = re.compile(r"^-?\d{1,3}(,\d{3})+(\.\d+)?$")


class UnsupportedFileError(ValueError):
    """Raised for files that are neither CSV nor XLSX."""


def _to_cell(value: Any) -> Any:
    """Convert a pandas cell to a plain JSON-friendly Python value."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        if value.hour == 0 and value.minute == 0 and value.second == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if hasattr(value, "item"):  # numpy scalar
        return _to_cell(value.item())
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _to_field_value(field: str, value: Any) -> Any:
    """Coerce a cell to the representation expected by the record models."""
    value = _to_cell(value)
    if value is None:
        return None
    if field in NUMERIC_FIELDS:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        text = str(value)
        if _THOUSANDS.match(text):
            text = text.replace(",", "")
        try:
            return float(text)
        except ValueError:
            return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_parsed_file(
    filename: str,
    headers: List[str],
    rows: List[Dict[str, Any]],
    size_bytes: int = 0,
    raw_text: Optional[str] = None,
) -> ParsedFile:
    """Detect the record type, normalize headers and build typed records.
    Rows whose primary key is empty are counted in `dropped_rows` and never
    become records.
    """
    file_type = detect_file_type(headers)
    canonical = [
        SOURCE_FILE_TYPE_FIELD if field == "file_type" else field
        for field in normalize_headers(headers, file_type)
    ]
    key_field = primary_key_field(file_type)

    records = []
    dropped = 0
    for row in rows:
        values: Dict[str, Any] = {}
        for field, header in zip(canonical, headers):
            # Two columns may map to one field; the first non-empty one wins.
            if values.get(field) is None:
                values[field] = _to_field_value(field, row.get(header))
        if not str(values.get(key_field) or "").strip():
            dropped += 1
            continue
        records.append(build_record(file_type, values))

    if dropped:
        logger.warning(f"{filename}: dropped {dropped} rows with an empty {key_field}")
    logger.info(f"{filename}: detected {file_type.value} file with {len(records)} records")

    return ParsedFile(
        filename=filename,
        size_bytes=size_bytes,
        raw_headers=headers,
        headers=canonical,
        file_type=file_type,
        rows=[{h: _to_cell(row.get(h)) for h in headers} for row in rows],
        records=records,
        dropped_rows=dropped,
        raw_text=raw_text,
    )


def read_table(filename: str, data: bytes) -> pd.DataFrame:
    suffix = Path(filename).suffix.lower()
    if suffix == ".csv":
        # Read everything as text so codes keep leading zeros.
        df = pd.read_csv(io.BytesIO(data), dtype=str, skipinitialspace=True)
    elif suffix == ".xlsx":
        try:
            df = pd.read_excel(io.BytesIO(data), dtype=object, engine="openpyxl")
        except (zipfile.BadZipFile, InvalidFileException) as e:
            raise ValueError(f"Could not read {filename} as an XLSX workbook: {e}") from e
    else:
        raise UnsupportedFileError(
            f"Unsupported file format: {filename}. Please upload CSV or XLSX files."
        )
    return df.dropna(how="all")


def parse_bytes(filename: str, data: bytes) -> ParsedFile:
    """Parse an uploaded CSV/XLSX payload into a ParsedFile."""
    df = read_table(filename, data)
    headers = [str(c).strip() for c in df.columns]
    df.columns = headers
    rows = df.astype(object).to_dict(orient="records")
    return build_parsed_file(filename, headers, rows, size_bytes=len(data))


class FileLoader:
    def __init__(self, input_dir: str):
        self.input_dir = Path(input_dir)

        if not self.input_dir.exists():
            raise FileNotFoundError(f"Input directory not found: {self.input_dir}")

    def load_file(self, file_path: Path) -> ParsedFile:
        """Parse a single CSV or XLSX file."""
        return parse_bytes(file_path.name, file_path.read_bytes())

    def load_files(self) -> Dict[str, ParsedFile]:
        """Load CSV and XLSX files from the input directory."""
        files: Dict[str, ParsedFile] = {}

        paths = sorted(p for p in self.input_dir.iterdir() if p.is_file())
        logger.info(f"Found {len(paths)} files in {self.input_dir}")

        for file_path in paths:
            if file_path.suffix.lower() not in SUPPORTED_SUFFIXES:
                logger.warning(f"Skipping unsupported file: {file_path.name}")
                continue
            try:
                files[file_path.name] = self.load_file(file_path)
                logger.debug(f"Loaded: {file_path.name}")
            except Exception as e:
                logger.error(f"Failed to load {file_path.name}: {e}")

        logger.info(f"Successfully loaded {len(files)} files")
        return files
