"""Value objects exchanged with the remote environment."""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Request:
    """The request a visit renders for.

    Values are passed to the application as-is: no type coercion and no
    decoding beyond what the caller already performed.

    Attributes:
        method: HTTP method.
        protocol: Scheme including the trailing colon, e.g. "https:".
        path: Request path without query string.
        headers: Header values by name. Names are matched case-insensitively.
        cookies: Cookie values by name.
        query_params: Query parameter values by name.
        body: Raw request body.
    """

    method: str = "GET"
    protocol: str = "http:"
    path: str = "/"
    headers: dict[str, list[str]] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)
    body: str = ""

    def normalized_headers(self) -> dict[str, list[str]]:
        """Return headers keyed by lower-cased name.

        Values of names differing only in case are merged in order.
        """
        headers: dict[str, list[str]] = {}
        for name, values in self.headers.items():
            if isinstance(values, str):
                values = [values]
            headers.setdefault(name.lower(), []).extend(values)
        return headers

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON shape handed to the remote render routine."""
        return {
            "method": self.method,
            "protocol": self.protocol,
            "path": self.path,
            "headers": self.normalized_headers(),
            "cookies": dict(self.cookies),
            "queryParams": dict(self.query_params),
            "body": self.body,
        }


@dataclass(frozen=True)
class Result:
    """A snapshot of the rendered document.

    Attributes:
        head_content: Inner markup of <head>.
        body_content: Inner markup of <body>.
        html_attributes: Attributes of <html>.
        head_attributes: Attributes of <head>.
        body_attributes: Attributes of <body>.
    """

    head_content: str = ""
    body_content: str = ""
    html_attributes: dict[str, str] = field(default_factory=dict)
    head_attributes: dict[str, str] = field(default_factory=dict)
    body_attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Result:
        """Build a Result from the captured remote document."""
        return cls(
            head_content=payload.get("headContent") or "",
            body_content=payload.get("bodyContent") or "",
            html_attributes=dict(payload.get("htmlAttributes") or {}),
            head_attributes=dict(payload.get("headAttributes") or {}),
            body_attributes=dict(payload.get("bodyAttributes") or {}),
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase JSON shape of the result."""
        return {
            "headContent": self.head_content,
            "bodyContent": self.body_content,
            "htmlAttributes": dict(self.html_attributes),
            "headAttributes": dict(self.head_attributes),
            "bodyAttributes": dict(self.body_attributes),
        }

    @staticmethod
    def attributes_string(attributes: dict[str, str]) -> str:
        """Render attributes as they appear inside an opening tag."""
        return "".join(
            f' {name}="{html.escape(value, quote=True)}"'
            for name, value in attributes.items()
        )

    def html(self) -> str:
        """Render the result as a standalone HTML document."""
        return (
            "<!DOCTYPE html>\n"
            f"<html{self.attributes_string(self.html_attributes)}>\n"
            f"<head{self.attributes_string(self.head_attributes)}>\n"
            f"{self.head_content}\n"
            "</head>\n"
            f"<body{self.attributes_string(self.body_attributes)}>\n"
            f"{self.body_content}\n"
            "</body>\n"
            "</html>\n"
        )
