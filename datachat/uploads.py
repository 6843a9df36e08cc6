from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import pandas as pd

MAX_UPLOAD_BYTES = 30 * 1024 * 1024
SUPPORTED_EXTENSIONS = {".csv", ".xlsx"}
CSV_ENCODINGS = ("utf-8-sig", "utf-8", "cp1252", "latin-1")


class UploadError(ValueError):
    pass


def _detect_csv_encoding(content: bytes) -> str:
    last_error: Exception | None = None
    for encoding in CSV_ENCODINGS:
        try:
            decoded = content.decode(encoding)
            pd.read_csv(io.StringIO(decoded), nrows=200)
            return encoding
        except Exception as exc:  # noqa: PERF203
            last_error = exc
    raise UploadError(f"Could not parse CSV with supported encodings. Last error: {last_error}")


def _to_json_compatible_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    frame = df.copy()
    frame.columns = [str(column) for column in frame.columns]
    for column in frame.columns:
        if pd.api.types.is_datetime64_any_dtype(frame[column]):
            frame[column] = frame[column].astype("string")
    return json.loads(frame.to_json(orient="records", date_format="iso"))


def read_upload(filename: str, content: bytes, sheet_name: str | None = None) -> list[dict[str, Any]]:
    """Parse an uploaded CSV/XLSX file into records (column -> scalar), keeping column order."""
    extension = Path(filename).suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UploadError("Only .csv and .xlsx files are supported.")
    if not content:
        raise UploadError("Uploaded file is empty.")
    if len(content) > MAX_UPLOAD_BYTES:
        raise UploadError("File too large (max 30MB).")

    try:
        if extension == ".csv":
            encoding = _detect_csv_encoding(content)
            df = pd.read_csv(io.StringIO(content.decode(encoding)))
        else:
            with pd.ExcelFile(io.BytesIO(content), engine="openpyxl") as workbook:
                sheets = workbook.sheet_names
                if not sheets:
                    raise UploadError("The Excel workbook does not contain sheets.")
                if sheet_name and sheet_name not in sheets:
                    raise UploadError(f"Selected sheet '{sheet_name}' not found. Available: {sheets}")
                df = workbook.parse(sheet_name or sheets[0])
    except UploadError:
        raise
    except Exception as exc:
        raise UploadError(f"File validation failed: {exc}") from exc

    return _to_json_compatible_rows(df)
