"""Helpers for reading OAuth error responses."""

import httpx


def error_detail(response: httpx.Response) -> str:
    """Summarize an RFC 6749 error body for an exception message.

    Only the ``error`` and ``error_description`` fields are used; the rest
    of the body may carry tokens or secrets and is never echoed.

    Returns:
        ": <error> - <description>", ": <error>", or "" when the body is
        not a JSON object with an ``error`` field
    """
    try:
        error_data = response.json()
    except ValueError:
        return ""
    if not isinstance(error_data, dict) or not error_data.get("error"):
        return ""
    detail = f": {error_data['error']}"
    if error_data.get("error_description"):
        detail += f" - {error_data['error_description']}"
    return detail
