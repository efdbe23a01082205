"""
CSV contact import: upload validation and row parsing.

This file is independent of FastAPI's routing layer:
- Validate the upload (extension, size)
- Decode and parse CSV rows into `ContactCreateRequest` objects
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from pathlib import Path

from fastapi import HTTPException, UploadFile
from pydantic import ValidationError

from core.config import env_int

from . import schemas

ALLOWED_EXTENSIONS = {".csv"}
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5 MiB
MAX_ROWS = 10_000

# Normalized header -> contact field. Headers are compared lowercased with
# everything but letters and digits removed ("First Name" -> "firstname").
HEADER_ALIASES: dict[str, str] = {
    "firstname": "first_name",
    "first": "first_name",
    "lastname": "last_name",
    "last": "last_name",
    "surname": "last_name",
    "name": "name",
    "fullname": "name",
    "email": "email",
    "emailaddress": "email",
    "phone": "phone",
    "phonenumber": "phone",
    "company": "company",
    "label": "company",
    "position": "position",
    "title": "position",
    "role": "position",
    "country": "country",
    "city": "city",
    "address": "address",
    "postalcode": "postal_code",
    "zip": "postal_code",
    "zipcode": "postal_code",
    "website": "website",
    "url": "website",
    "tags": "tags",
    "notes": "notes",
    "status": "status",
}


@dataclass
class ParsedImport:
    total_rows: int = 0
    contacts: list[tuple[int, schemas.ContactCreateRequest]] = field(default_factory=list)
    errors: list[schemas.ImportRowError] = field(default_factory=list)


def max_upload_bytes() -> int:
    return env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)


def validate_upload(file: UploadFile) -> str:
    """
    Return the normalized extension if the upload looks like a CSV file.

    The filename extension is checked because `content_type` is often wrong.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="Missing filename.")

    ext = Path(file.filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{ext}'. Allowed: {sorted(ALLOWED_EXTENSIONS)}",
        )
    return ext


async def read_upload_bytes(file: UploadFile, max_bytes: int) -> bytes:
    chunk_size = 1024 * 1024
    buf = bytearray()
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Max is {max_bytes} bytes.",
            )
    return bytes(buf)


def _normalize_header(header: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (header or "").lower())


def _split_tags(raw: str) -> list[str]:
    return [t for t in re.split(r"[;,|]", raw or "") if t.strip()]


def _row_to_payload(row: dict[str, str], mapping: dict[str, str]) -> dict:
    payload: dict = {}
    for header, value in row.items():
        target = mapping.get(header or "")
        text = (value or "").strip()
        if not target or not text:
            continue
        payload[target] = text

    full_name = payload.pop("name", "")
    if full_name and not (payload.get("first_name") and payload.get("last_name")):
        first, _, last = full_name.partition(" ")
        payload.setdefault("first_name", first)
        payload.setdefault("last_name", last or "-")

    if "tags" in payload:
        payload["tags"] = _split_tags(payload["tags"])
    if "status" in payload:
        payload["status"] = payload["status"].lower()
    return payload


def _error_text(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def parse_csv(data: bytes) -> ParsedImport:
    # utf-8-sig strips the BOM spreadsheet exports like to add.
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=422, detail="CSV must be UTF-8.") from None
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise HTTPException(status_code=422, detail="CSV file has no header row.")

    mapping = {
        header: HEADER_ALIASES[_normalize_header(header)]
        for header in reader.fieldnames
        if _normalize_header(header) in HEADER_ALIASES
    }
    if "email" not in mapping.values():
        raise HTTPException(status_code=422, detail="CSV file must have an email column.")

    result = ParsedImport()
    # Row 1 is the header.
    for row_number, row in enumerate(reader, start=2):
        if result.total_rows >= MAX_ROWS:
            raise HTTPException(status_code=413, detail=f"CSV file has more than {MAX_ROWS} rows.")
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        result.total_rows += 1
        try:
            contact = schemas.ContactCreateRequest(**_row_to_payload(row, mapping))
        except ValidationError as exc:
            result.errors.append(schemas.ImportRowError(row=row_number, error=_error_text(exc)))
            continue
        result.contacts.append((row_number, contact))
    return result
