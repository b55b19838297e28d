"""
Campus API — Schema Validation Stage
=====================================

What:  Parses a route's raw input (JSON body or query string) against a
       Pydantic schema and hands the typed result to the business handler.
Why:   Handlers receive validated data as an explicit argument and never
       re-read raw input.
How:   validate_input() is pure: no I/O, no caching, a fresh outcome per call.
       The stage around it only reads the request and renders failures.

Failure shape (400 VALIDATION_ERROR):
    details = [
        {"field": "title", "message": "String should have at least 3 characters"},
        {"field": "tags[1]", "message": "Input should be a valid string"},
    ]
    One entry per violated constraint, in the order Pydantic reports them.
    Paths are dotted, with list indices in brackets; "" means the whole input.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from starlette.requests import Request

from campus_api.exceptions import ErrorKind
from campus_api.middleware.context import Ok, Rejected, RequestContext, Route, StageResult
from campus_api.middleware.security import sanitize_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldIssue:
    field: str
    message: str


@dataclass(frozen=True)
class Valid:
    data: BaseModel


@dataclass(frozen=True)
class Invalid:
    issues: Tuple[FieldIssue, ...]

    def details(self) -> List[Dict[str, str]]:
        return [{"field": issue.field, "message": issue.message} for issue in self.issues]


ValidationOutcome = Union[Valid, Invalid]


def field_path(loc: Sequence[Union[str, int]]) -> str:
    """("tags", 0, "name") → "tags[0].name" """
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path


def validate_input(schema: Type[BaseModel], raw: Any) -> ValidationOutcome:
    """
    Validate and coerce `raw` against `schema`.

    Lax mode applies, so "42" becomes 42 for an int field and "true" becomes
    True for a bool field, which is what query strings need.
    """
    try:
        data = schema.model_validate(raw)
    except SchemaError as exc:
        issues = tuple(
            FieldIssue(field=field_path(err["loc"]), message=err["msg"])
            for err in exc.errors(include_url=False)
        )
        return Invalid(issues)
    return Valid(data)


def query_to_dict(request: Request) -> Dict[str, Any]:
    """Query parameters as a dict; a key given more than once becomes a list."""
    raw: Dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key in raw:
            existing = raw[key]
            raw[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            raw[key] = value
    return raw


async def read_raw_input(request: Request, source: str) -> Union[Any, Invalid]:
    if source == "query":
        return query_to_dict(request)

    body = await request.body()
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return Invalid((FieldIssue(field="", message="Request body must be valid JSON"),))


class Validator:
    """Validation stage. A route without a schema passes straight through."""

    async def __call__(self, ctx: RequestContext, route: Route) -> StageResult:
        config = route.config
        if config.schema is None:
            return Ok()

        raw = await read_raw_input(ctx.request, config.schema_source)
        if not isinstance(raw, Invalid):
            if config.sanitize:
                raw = sanitize_value(raw)
            outcome = validate_input(config.schema, raw)
        else:
            outcome = raw

        if isinstance(outcome, Invalid):
            logger.warning(
                "Validation failed for %s %s: %d issue(s)",
                ctx.request.method,
                ctx.request.url.path,
                len(outcome.issues),
            )
            return Rejected(ErrorKind.VALIDATION, details=outcome.details())

        ctx.data = outcome.data
        return Ok(outcome.data)
