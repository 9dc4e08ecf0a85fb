"""
Rich console tracing of requests and responses.

Used by ``console_trace_middleware`` and by clients created with
``ClientConfig(debug=True)``. Authorization values are always masked before
anything is printed.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

SENSITIVE_HEADERS = {"authorization", "x-api-key", "proxy-authorization"}
SENSITIVE_KEYS = {"api_key", "apiKey", "password", "token", "secret"}

# stderr keeps traces out of piped program output
console = Console(stderr=True)


def mask_sensitive(value: Optional[str], show_chars: int = 4) -> str:
    """
    Mask sensitive values for logging.

    Args:
        value: Value to mask
        show_chars: Number of characters to show before masking (default: 4)

    Returns:
        str: Masked value, "<none>" for empty values
    """
    if not value:
        return "<none>"
    if len(value) <= show_chars:
        return "*" * len(value)
    return value[:show_chars] + "***"


def mask_auth_header(value: Optional[str], show_chars: int = 15) -> str:
    """Mask an Authorization value, keeping the scheme readable."""
    if not value:
        return "<none>"
    scheme, _, credential = value.partition(" ")
    if credential and scheme.lower() in ("bearer", "basic"):
        return f"{scheme} {mask_sensitive(credential, max(0, show_chars - len(scheme) - 1))}"
    return mask_sensitive(value, show_chars)


def sanitize_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Copy of ``headers`` with credentials masked."""
    if not headers:
        return {}
    return {
        key: mask_auth_header(value) if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def sanitize_data(data: Any) -> Any:
    """Recursively redact credential-looking keys in request/response data."""
    if isinstance(data, Mapping):
        return {
            key: "[REDACTED]" if key in SENSITIVE_KEYS and value else sanitize_data(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize_data(item) for item in data]
    return data


def format_body(body: Any) -> str:
    """Format body for pretty printing."""
    if body is None:
        return ""
    if isinstance(body, (dict, list)):
        return json.dumps(body, indent=2, ensure_ascii=False, default=str)
    if isinstance(body, bytes):
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<binary data: {len(body)} bytes>"
    return str(body)


def print_request(method: str, url: str, headers: Optional[Mapping[str, str]], body: Any = None) -> None:
    """Print a request panel, its masked headers and its JSON body."""
    console.print(Panel(f"[bold cyan]{method}[/bold cyan] {url}", title="[bold blue]Request[/bold blue]"))
    console.print("[bold]Headers:[/bold]", sanitize_headers(headers))
    if body is not None:
        console.print(Panel(
            Syntax(format_body(sanitize_data(body)), "json", theme="monokai"),
            title="[bold]Request Body[/bold]",
        ))


def print_response(
    status: int,
    status_text: str,
    path: str,
    duration_ms: int,
    data: Any = None,
) -> None:
    """Print a response status panel and its body."""
    color = "green" if 200 <= status < 300 else "red"
    console.print(Panel(
        f"[bold {color}]{status}[/bold {color}] {status_text} ({duration_ms}ms)",
        title=f"[bold blue]Response[/bold blue] ({path})",
    ))
    if data:
        console.print(Panel(
            Syntax(format_body(data), "json", theme="monokai"),
            title="[bold]Response Body[/bold]",
        ))


def print_error(path: str, error: Any, duration_ms: int) -> None:
    """Print a failed request with its error code."""
    code = getattr(error, "code", type(error).__name__)
    console.print(Panel(
        f"[bold red]{code}[/bold red] {error} ({duration_ms}ms)",
        title=f"[bold red]Error[/bold red] ({path})",
    ))
