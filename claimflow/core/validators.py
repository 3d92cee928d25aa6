"""Stage output validation against the closed pydantic output models."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from claimflow.models.outputs import STAGE_OUTPUT_MODELS

logger = logging.getLogger(__name__)


class ValidationResult(BaseModel):
    """Outcome of one validation.  ``data`` is the normalised output when ok."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    errors: list[dict[str, Any]] = []
    data: dict[str, Any] | None = None


class SchemaValidator:
    """Validates raw agent output for one of the six stage keys."""

    def __init__(self, models: dict[str, type[BaseModel]] | None = None) -> None:
        self._models = dict(models or STAGE_OUTPUT_MODELS)

    @property
    def stage_keys(self) -> list[str]:
        return list(self._models)

    def _model_for(self, stage_key: str) -> type[BaseModel]:
        try:
            return self._models[stage_key]
        except KeyError:
            raise KeyError(f"No output schema registered for stage {stage_key!r}") from None

    def validate(self, stage_key: str, data: Any) -> ValidationResult:
        model = self._model_for(stage_key)
        try:
            parsed = model.model_validate(data)
        except ValidationError as exc:
            errors = [
                {
                    "path": "/" + "/".join(str(p) for p in err["loc"]),
                    "message": err["msg"],
                    "type": err["type"],
                }
                for err in exc.errors()
            ]
            logger.info("Stage %s output failed validation (%d errors)", stage_key, len(errors))
            return ValidationResult(ok=False, errors=errors)
        return ValidationResult(ok=True, data=parsed.model_dump(mode="json"))

    def json_schema(self, stage_key: str) -> dict[str, Any]:
        """JSON Schema for *stage_key*, as embedded in fallback agent prompts."""
        return self._model_for(stage_key).model_json_schema()
