"""
Slack webhook notification sender.

Posts operator alerts to a Slack channel via incoming webhooks when a
cron pass (scheduler, trial expiration) fails as a whole.
"""

from __future__ import annotations

import logging

import httpx

from core.config import settings

logger = logging.getLogger(__name__)


async def send_slack_alert(
    text: str,
    *,
    blocks: list[dict] | None = None,
) -> bool:
    """
    Send a message to the configured Slack webhook.

    Returns:
        True if sent successfully, False otherwise.
    """
    if not settings.slack_webhook_url:
        logger.debug("SLACK_WEBHOOK_URL not configured. Alert skipped.")
        return False

    payload: dict = {"text": text}
    if blocks:
        payload["blocks"] = blocks

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                settings.slack_webhook_url,
                json=payload,
            )
            response.raise_for_status()
            return True
    except httpx.HTTPError as exc:
        logger.error("Failed to send Slack alert: %s", exc)
        return False


async def alert_pass_failure(pass_name: str, error: str, elapsed_ms: int) -> bool:
    """Alert operators that a whole cron pass failed."""
    text = f":rotating_light: {pass_name} failed after {elapsed_ms} ms: {error}"
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": f"{pass_name} failed"}},
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Error:*\n{error}"},
                {"type": "mrkdwn", "text": f"*Elapsed:*\n{elapsed_ms} ms"},
            ],
        },
    ]
    return await send_slack_alert(text, blocks=blocks)
