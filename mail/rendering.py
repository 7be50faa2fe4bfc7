"""
mail/rendering.py -- Jinja2 rendering for outbound HTML email.

Autoescaping is on for every template, so a callback URL containing quotes or
angle brackets cannot break out of the href attribute.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

CONFIRMATION_LINK_MINUTES = 30

_env = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    autoescape=select_autoescape(default=True, default_for_string=True),
)


def confirmation_subject(app_name: str) -> str:
    return f"Confirm your email address for {app_name}"


def render_confirmation_email(link: str, app_name: str) -> str:
    """Return the HTML body of the email-confirmation message."""
    return _env.get_template("confirm_email.html").render(
        link=link,
        app_name=app_name,
        expires_minutes=CONFIRMATION_LINK_MINUTES,
    )
