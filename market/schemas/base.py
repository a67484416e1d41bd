from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from market.exceptions import ValidationError


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _describe(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    if error["type"] == "json_invalid":
        return "Invalid JSON"
    location = ".".join(str(part) for part in error["loc"])
    return f"{location}: {error['msg']}" if location else error["msg"]


def parse_payload(model: type[BaseModel], raw: bytes | str | dict | None):
    """Validate a raw request body into ``model``, raising our ValidationError."""
    if raw is None or raw in (b"", ""):
        raise ValidationError("Missing request body")
    try:
        if isinstance(raw, (bytes, str)):
            return model.model_validate_json(raw)
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc
