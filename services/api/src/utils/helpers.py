"""Small pure helpers shared by the routes."""

import hashlib
import json
import math
import re
import secrets
import time
from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from couchbase.exceptions import DocumentExistsException, DocumentNotFoundException
from pydantic import ValidationError

T = TypeVar("T")


# ── Ids & strings ───────────────────────────────────────────────────────────

def generate_token(length: int = 8) -> str:
    return secrets.token_hex(length)


def generate_id(prefix: str, random_bytes: int = 2) -> str:
    """``<PREFIX>-<epoch ms>-<random hex>``, upper-cased."""
    timestamp = int(time.time() * 1000)
    return f"{prefix}-{timestamp}-{secrets.token_hex(random_bytes)}".upper()


def generate_project_id() -> str:
    return generate_id("PRJ")


def generate_claim_id() -> str:
    return generate_id("CLM")


def generate_listing_id() -> str:
    return generate_id("MKT")


def slugify(text: str) -> str:
    text = re.sub(r"[^\w ]+", "", text.lower())
    return re.sub(r" +", "-", text)


def capitalize_first(value: Optional[str]) -> str:
    if not value:
        return ""
    return value[0].upper() + value[1:]


# ── Dates ───────────────────────────────────────────────────────────────────

def format_date(value: Optional[date], fmt: str = "YYYY-MM-DD") -> str:
    if not value:
        return ""
    return (
        fmt.replace("YYYY", f"{value.year:04d}")
        .replace("MM", f"{value.month:02d}")
        .replace("DD", f"{value.day:02d}")
    )


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def is_valid_date_range(start: datetime, end: datetime) -> bool:
    return start < end


# ── Files & numbers ─────────────────────────────────────────────────────────

def get_file_extension(filename: str) -> str:
    _, dot, ext = filename.rpartition(".")
    return f".{ext.lower()}" if dot and ext else ""


def format_file_size(size: Optional[int]) -> str:
    if not size:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024 ** i), 2)
    return f"{value:g} {units[i]}"


def is_valid_email(email: str) -> bool:
    return re.fullmatch(r"[^\s@]+@[^\s@]+\.[^\s@]+", email or "") is not None


# ── Pagination ──────────────────────────────────────────────────────────────

def pagination(page: Any = 1, limit: Any = 10) -> Tuple[int, int, int]:
    """Returns ``(page, limit, skip)``, falling back to 1 and 10 on junk input."""
    try:
        page = int(page) or 1
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit) or 10
    except (TypeError, ValueError):
        limit = 10
    page = max(page, 1)
    limit = max(limit, 1)
    return page, limit, (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def build_pagination_response(data: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "data": data,
        "pagination": {
            "current": page,
            "total": total_pages(total, limit),
            "limit": limit,
            "count": len(data),
            "totalCount": total,
        },
    }


# ── Errors ──────────────────────────────────────────────────────────────────

class AppError(Exception):
    def __init__(self, message: str, status_code: int = 500, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


def create_error(message: str, status_code: int = 500, code: Optional[str] = None) -> AppError:
    return AppError(message, status_code, code)


def normalize_error(error: Exception) -> AppError:
    """Map persistence and validation failures onto user-facing errors."""
    if isinstance(error, AppError):
        return error
    if isinstance(error, DocumentExistsException):
        return create_error("Document already exists", 400, "DUPLICATE_FIELD")
    if isinstance(error, DocumentNotFoundException):
        return create_error("Document not found", 404, "NOT_FOUND")
    if isinstance(error, ValidationError):
        messages = [e["msg"] for e in error.errors()]
        return create_error(", ".join(messages), 400, "VALIDATION_ERROR")
    return create_error(str(error) or "Internal server error", 500)


# ── Hashing ─────────────────────────────────────────────────────────────────

def generate_hash(data: Any) -> str:
    payload = json.dumps(data, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode()).hexdigest()


def verify_hash(data: Any, expected: str) -> bool:
    return secrets.compare_digest(generate_hash(data), expected)


# ── Collections ─────────────────────────────────────────────────────────────

def chunk(items: Sequence[T], size: int) -> List[Sequence[T]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def unique(items: Iterable[T]) -> List[T]:
    return list(OrderedDict.fromkeys(items))


def group_by(items: Iterable[Dict[str, Any]], key: str) -> Dict[Hashable, List[Dict[str, Any]]]:
    groups: Dict[Hashable, List[Dict[str, Any]]] = {}
    for item in items:
        groups.setdefault(item.get(key), []).append(item)
    return groups


def pick(obj: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    return {k: obj[k] for k in keys if k in obj}


def omit(obj: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    excluded = set(keys)
    return {k: v for k, v in obj.items() if k not in excluded}
