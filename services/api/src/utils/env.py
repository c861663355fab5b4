import os
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from pydantic import ValidationError, create_model

from . import log

logger = log.get_logger(__name__)


def _identity(value: str) -> str:
    return value


@dataclass(frozen=True)
class EnvVarSpec:
    id: str
    default: Optional[str] = None
    parse: Callable[[str], Any] = _identity
    type: Tuple[Any, Any] = (str, ...)
    is_optional: bool = False
    is_secret: bool = False


def parse(var: EnvVarSpec) -> Any:
    """Read and convert a variable. Optional variables may come back as None."""
    value = os.environ.get(var.id, var.default)
    if value is None or value == "":
        if var.is_optional:
            return None
        raise ValueError(f"Missing required environment variable {var.id}")
    return var.parse(value)


def validate(specs: List[EnvVarSpec]) -> bool:
    """Parse every spec and check the values against their declared types."""
    ok = True
    values = {}
    fields = {}
    for spec in specs:
        if spec.is_optional:
            fields[spec.id] = (Optional[spec.type[0]], None)
        else:
            fields[spec.id] = spec.type
        try:
            values[spec.id] = parse(spec)
        except Exception as e:
            logger.error("Invalid environment variable %s: %s", spec.id, e)
            ok = False

    model = create_model("EnvVars", **fields)
    try:
        model(**values)
    except ValidationError as e:
        for error in e.errors():
            name = ".".join(str(part) for part in error["loc"])
            shown = "<secret>" if _is_secret(specs, name) else values.get(name)
            logger.error("Invalid environment variable %s=%r: %s", name, shown, error["msg"])
        ok = False

    return ok


def _is_secret(specs: List[EnvVarSpec], name: str) -> bool:
    return any(spec.id == name and spec.is_secret for spec in specs)
