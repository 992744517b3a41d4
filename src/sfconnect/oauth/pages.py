"""HTML pages returned to the browser when the handshake ends."""

from __future__ import annotations

from html import escape
from typing import Optional

_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
</head>
<body style="font-family: Arial, sans-serif; background: #f3f3f3;">
  <div style="max-width: 480px; margin: 80px auto; padding: 32px;
              border: 1px solid #d8dde6; border-radius: 8px;
              text-align: center; background: #ffffff;">
    <h1 style="font-size: 20px; color: {colour}; margin-bottom: 16px;">{title}</h1>
    <p style="font-size: 14px; color: #4a4a4a; margin-bottom: 24px;">{message}</p>
    <p style="font-size: 12px; color: #9faab5;">sfconnect &middot; OAuth authorization flow</p>
  </div>
</body>
</html>
"""


def render_success_page(alias: str, instance_url: Optional[str] = None) -> str:
    """Page shown after the environment was connected and saved."""
    target = f"{alias} ({instance_url})" if instance_url else alias
    return _TEMPLATE.format(
        title="Connection successful",
        colour="#16325c",
        message=escape(
            f"Environment {target} is connected. You can close this window "
            "and return to the terminal."
        ),
    )


def render_error_page(reason: str) -> str:
    """Page shown when the callback was rejected or the exchange failed."""
    return _TEMPLATE.format(
        title="Connection failed",
        colour="#c23934",
        message=escape(f"{reason.rstrip('.')}. Check the terminal and run connect again."),
    )


def render_not_found_page() -> str:
    """Page for any request that is not the OAuth callback."""
    return _TEMPLATE.format(
        title="Not found",
        colour="#4a4a4a",
        message="This local listener only serves the OAuth callback.",
    )
