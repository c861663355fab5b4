import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        allow_inf_nan=False,
    )


def check_date_order(start: Optional[datetime], end: Optional[datetime], message: str) -> None:
    if start is not None and end is not None and end <= start:
        raise ValueError(message)


def validation_errors(error: Union[ValidationError, RequestValidationError]) -> List[Dict[str, Any]]:
    """``[{field, message, value}]`` for the 400 envelope."""
    errors = []
    for e in error.errors():
        loc = [str(part) for part in e.get("loc", ()) if part not in ("body", "query", "path")]
        value = e.get("input")
        if isinstance(value, float) and not math.isfinite(value):
            value = str(value)
        errors.append({
            "field": ".".join(loc),
            "message": e.get("msg", "Invalid value"),
            "value": value if isinstance(value, (str, int, float, bool, type(None))) else None,
        })
    return errors


# ── Response shapes ─────────────────────────────────────────────────────────

def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {to_camel(k): _camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camelize(v) for v in value]
    return value


def to_wire(item: Any, renames: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Render a stored entity as ``{"_id": key, ...camelCase fields}``."""
    doc = item.data.model_dump(mode="json")
    for old, new in (renames or {}).items():
        if old in doc:
            doc[new] = doc.pop(old)
    return {"_id": item.id, **_camelize(doc)}


def user_to_wire(user: Any) -> Dict[str, Any]:
    return to_wire(user)


def project_to_wire(project: Any) -> Dict[str, Any]:
    return to_wire(project, {"developer_id": "developer"})


def claim_to_wire(claim: Any) -> Dict[str, Any]:
    return to_wire(claim, {"project_id": "project", "developer_id": "developer"})


def listing_to_wire(listing: Any) -> Dict[str, Any]:
    return to_wire(listing, {
        "seller_id": "seller",
        "project_id": "project",
        "credit_claim_id": "credit_claim",
    })


def ownership_to_wire(ownership: Any) -> Dict[str, Any]:
    return to_wire(ownership, {
        "buyer_id": "buyer",
        "seller_id": "seller",
        "listing_id": "listing",
        "project_id": "project",
        "credit_claim_id": "credit_claim",
    })
