"""Strict structured-output formats sent with every model call.

The provider only accepts a subset of JSON Schema in strict mode (no numeric
bounds, every property required, ``additionalProperties: false``), so these
are written out by hand rather than generated from the pydantic models.
``tests/test_vision_schemas.py`` keeps the two in sync.
"""

from typing import Any

from eatlock_api.models.vision import (
    CompareReasonCode,
    CompareVerdict,
    FoodReasonCode,
)


def _closed_object(properties: dict[str, Any]) -> dict[str, Any]:
    """Object schema where every property is required and nothing else is allowed."""
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def _enum(values: type) -> dict[str, Any]:
    return {"type": "string", "enum": [v.value for v in values]}


_NUMBER = {"type": "number"}
_STRING = {"type": "string"}
_BOOLEAN = {"type": "boolean"}


FOOD_CHECK_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "name": "food_check",
    "strict": True,
    "schema": _closed_object({
        "isFood": _BOOLEAN,
        "confidence": _NUMBER,
        "hasPlateOrBowl": _BOOLEAN,
        "quality": _closed_object({
            "brightness": _NUMBER,
            "blur": _NUMBER,
            "framing": _NUMBER,
        }),
        "reasonCode": _enum(FoodReasonCode),
        "roastLine": _STRING,
        "retakeHint": _STRING,
    }),
}

COMPARE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "name": "compare_meal",
    "strict": True,
    "schema": _closed_object({
        "isSameScene": _BOOLEAN,
        "duplicateScore": _NUMBER,
        "foodChangeScore": _NUMBER,
        "verdict": _enum(CompareVerdict),
        "confidence": _NUMBER,
        "reasonCode": _enum(CompareReasonCode),
        "roastLine": _STRING,
        "retakeHint": _STRING,
    }),
}

NUTRITION_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "name": "nutrition_estimate",
    "strict": True,
    "schema": _closed_object({
        "food_label": _STRING,
        "estimated_calories": _NUMBER,
        "min_calories": _NUMBER,
        "max_calories": _NUMBER,
        "confidence": _NUMBER,
        "notes": _STRING,
    }),
}
