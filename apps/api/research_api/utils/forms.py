"""Form-post parsing for server actions."""

import typing
from typing import Any, TypeVar

from fastapi import Request
from pydantic import BaseModel

FormT = TypeVar("FormT", bound=BaseModel)


def _is_list_field(model: type[BaseModel], name: str) -> bool:
    field = model.model_fields.get(name)
    if field is None:
        return False
    return typing.get_origin(field.annotation) is list


async def parse_form(request: Request, model: type[FormT]) -> FormT:
    """Validate a form post against ``model``.

    Repeated keys are collected for list fields (checkbox groups); for other
    fields the last value wins. File uploads are ignored.

    Raises:
        pydantic.ValidationError: Unknown (``extra="forbid"``) or malformed fields
    """
    form = await request.form()
    payload: dict[str, Any] = {}
    for key, value in form.multi_items():
        if not isinstance(value, str):
            continue
        if _is_list_field(model, key):
            payload.setdefault(key, []).append(value)
        else:
            payload[key] = value
    return model.model_validate(payload)
