"""Wire models for the worker control channel.

Outbound frames carry a request id and the request options:

    {"requestId": "https://example.com3f2a...", "options": {"url": ..., "method": "get", ...}}

Inbound frames are the worker's response envelope, correlated by ``RequestID``:

    {"RequestID": "https://example.com3f2a...", "Status": 200, "Body": "...", "Headers": {...}}

An envelope with an ``error`` field reports a failed request.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_JA3, DEFAULT_USER_AGENT, SET_COOKIE_SEPARATOR
from .errors import ProtocolError, WorkerError

Method = Literal["head", "get", "post", "put", "delete", "trace", "options", "connect", "patch"]


def new_request_id(url: str) -> str:
    """Create a correlation id for a request to ``url``."""
    return f"{url}{uuid.uuid4().hex}"


class Cookie(BaseModel):
    """A cookie as understood by the worker."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    value: str
    path: str | None = None
    domain: str | None = None
    expires: str | None = None
    raw_expires: str | None = None
    max_age: int | None = None
    secure: bool | None = None
    http_only: bool | None = None
    same_site: str | None = None
    unparsed: str | None = None


def normalize_cookies(cookies: Any) -> Any:
    """Turn a ``{name: value}`` mapping into a list of ``{"name", "value"}`` records.

    Anything that is not a mapping (already a list of cookies, or ``None``)
    is returned unchanged.
    """
    if isinstance(cookies, Mapping):
        return [{"name": name, "value": value} for name, value in cookies.items()]
    return cookies


class RequestOptions(BaseModel):
    """Options for one request, serialized with camelCase keys.

    Unknown keys are kept and forwarded to the worker as-is. Missing or empty
    ``ja3``, ``user_agent``, ``body`` and ``proxy`` are filled with defaults.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    ja3: str | None = None
    user_agent: str | None = None
    body: str | None = None
    proxy: str | None = None
    cookies: Any = None
    headers: dict[str, Any] | None = None
    timeout: int | None = None
    disable_redirect: bool = False
    header_order: list[str] | None = None

    @field_validator("cookies", mode="before")
    @classmethod
    def _normalize_cookies(cls, value: Any) -> Any:
        return normalize_cookies(value)

    @model_validator(mode="after")
    def _apply_defaults(self) -> RequestOptions:
        if not self.ja3:
            self.ja3 = DEFAULT_JA3
        if not self.user_agent:
            self.user_agent = DEFAULT_USER_AGENT
        if not self.body:
            self.body = ""
        if not self.proxy:
            self.proxy = ""
        return self

    @classmethod
    def coerce(cls, options: RequestOptions | Mapping[str, Any] | None) -> RequestOptions:
        """Accept options as a model, a plain mapping, or ``None``."""
        if options is None:
            return cls()
        if isinstance(options, RequestOptions):
            return options
        return cls.model_validate(dict(options))

    def to_wire(self, url: str, method: str) -> dict[str, Any]:
        """Build the ``options`` object of an outbound frame."""
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        if isinstance(self.cookies, list):
            data["cookies"] = [
                c.model_dump(by_alias=True, exclude_none=True) if isinstance(c, Cookie) else c
                for c in self.cookies
            ]
        return {"url": url, **data, "method": method}


class WorkerRequest(BaseModel):
    """Outbound frame sent to the worker."""

    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId")
    options: dict[str, Any]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class Response(BaseModel):
    """Normalized response returned to callers."""

    status: int
    body: Any = ""
    headers: dict[str, Any] = Field(default_factory=dict)

    @property
    def cookies(self) -> list[str]:
        """The ``Set-Cookie`` values, one string per cookie."""
        value = self.headers.get("Set-Cookie")
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return list(value)


class WorkerResponse(BaseModel):
    """Inbound response envelope from the worker."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    request_id: str = Field(alias="RequestID")
    status: int = Field(default=0, alias="Status")
    body: Any = Field(default="", alias="Body")
    headers: dict[str, Any] | None = Field(default=None, alias="Headers")
    error: Any = None

    @classmethod
    def from_message(cls, message: Mapping[str, Any]) -> WorkerResponse:
        """Validate a decoded inbound frame."""
        try:
            return cls.model_validate(dict(message))
        except ValidationError as e:
            raise ProtocolError(f"Invalid response envelope: {e}") from e

    def to_response(self) -> Response:
        """Normalize into a :class:`Response`.

        Raises:
            WorkerError: If the worker reported an error for this request.
        """
        if self.error:
            raise WorkerError(str(self.error), request_id=self.request_id)

        body = self.body
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except ValueError:
                pass  # not JSON, keep the raw text

        headers = dict(self.headers or {})
        set_cookie = headers.get("Set-Cookie")
        if isinstance(set_cookie, str) and set_cookie:
            headers["Set-Cookie"] = set_cookie.split(SET_COOKIE_SEPARATOR)

        return Response(status=self.status, body=body, headers=headers)
