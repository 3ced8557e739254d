"""Lifecycle email templates: subject lines and HTML bodies."""

from __future__ import annotations

from html import escape
from typing import Any

TRIAL_ENDED = "trial_ended"
GRACE_PERIOD_ENDED = "grace_period_ended"

_SUBJECTS = {
    TRIAL_ENDED: "Your trial has ended",
    GRACE_PERIOD_ENDED: "Your MarketPulse access has expired",
}


class UnknownTemplateError(KeyError):
    pass


def generate_subject(template_name: str) -> str:
    return _SUBJECTS.get(template_name, "MarketPulse Update")


def _layout(title: str, body: str, cta_label: str, cta_url: str) -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family:Arial,sans-serif;color:#1f2937\">"
        f"<h1 style=\"font-size:22px\">{escape(title)}</h1>"
        f"{body}"
        f"<p><a href=\"{escape(cta_url, quote=True)}\" "
        "style=\"background:#2563eb;color:#fff;padding:10px 18px;border-radius:6px;"
        f"text-decoration:none\">{escape(cta_label)}</a></p>"
        "<p style=\"font-size:12px;color:#6b7280\">MarketPulse · competitor price monitoring</p>"
        "</body></html>"
    )


def _trial_ended(data: dict[str, Any]) -> str:
    days = int(data.get("grace_period_days", 3))
    body = (
        f"<p>Hi {escape(data.get('user_name') or 'there')},</p>"
        "<p>Your free trial has ended. Your competitors will keep being monitored "
        f"for <strong>{days} {'day' if days == 1 else 'days'}</strong> of grace period, "
        "after which monitoring stops.</p>"
        "<p>Upgrade now to keep your price history and alerts running.</p>"
    )
    return _layout("Your trial has ended", body, "Upgrade now", data["dashboard_url"])


def _grace_period_ended(data: dict[str, Any]) -> str:
    body = (
        f"<p>Hi {escape(data.get('user_name') or 'there')},</p>"
        "<p>Your grace period is over and competitor monitoring has been paused. "
        "Your data is safe: pick a plan to resume where you left off.</p>"
    )
    return _layout("Your access has expired", body, "Choose a plan", data["dashboard_url"])


_RENDERERS = {
    TRIAL_ENDED: _trial_ended,
    GRACE_PERIOD_ENDED: _grace_period_ended,
}


def render_email_template(template_name: str, data: dict[str, Any]) -> str:
    try:
        renderer = _RENDERERS[template_name]
    except KeyError:
        raise UnknownTemplateError(template_name) from None
    return renderer(data)
