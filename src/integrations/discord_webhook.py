"""
Discord webhook relay for decoded emails.

The email becomes a single embed: subject as title, markdown body as
description, the first hosted image as the embed image and any further
images as a linked list.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from domain.errors import ConfigurationError, WebhookDeliveryError
from domain.models import ParsedEmail

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = float(os.environ.get('DISCORD_TIMEOUT_SECONDS', '10'))

# Discord embed limits
TITLE_LIMIT = 256
DESCRIPTION_LIMIT = 4096
FIELD_VALUE_LIMIT = 1024
FOOTER_LIMIT = 2048
# Combined characters of title, description, footer and field names/values
EMBED_TOTAL_LIMIT = 6000

EMBED_COLOR = 0x5865F2

session = requests.Session()


@dataclass(frozen=True)
class DiscordConfig:
    """Webhook target and optional role to mention."""
    webhook_url: str
    mention_role_id: Optional[str] = None


def read_config() -> DiscordConfig:
    """
    Read Discord settings from the environment.

    Raises:
        ConfigurationError: If DISCORD_WEBHOOK_URL is missing or not https
    """
    webhook_url = os.environ.get('DISCORD_WEBHOOK_URL', '').strip()
    if not webhook_url:
        raise ConfigurationError("DISCORD_WEBHOOK_URL must be set")
    if not webhook_url.startswith('https://'):
        raise ConfigurationError(
            f"DISCORD_WEBHOOK_URL has invalid format, expected https URL, "
            f"got: '{webhook_url[:30]}...'"
        )

    role_id = os.environ.get('DISCORD_MENTION_ROLE_ID', '').strip() or None
    return DiscordConfig(webhook_url=webhook_url, mention_role_id=role_id)


def truncate(text: str, limit: int) -> str:
    """Cut text to at most `limit` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit - 1].rstrip() + '…'


def build_payload(parsed: ParsedEmail, config: DiscordConfig) -> Dict[str, Any]:
    """
    Build the webhook JSON payload for a decoded email.

    The description gets whatever room the title, footer and attachment
    field leave under the combined embed limit.

    Args:
        parsed: Decoded email (attachment URLs already set)
        config: Discord configuration

    Returns:
        Dict ready to POST to the webhook
    """
    embed: Dict[str, Any] = {
        'title': truncate(parsed.subject, TITLE_LIMIT),
        'color': EMBED_COLOR,
    }
    used = len(embed['title'])

    if parsed.from_header:
        embed['footer'] = {'text': truncate(f"From: {parsed.from_header}", FOOTER_LIMIT)}
        used += len(embed['footer']['text'])

    images = parsed.images_with_urls
    if images:
        embed['image'] = {'url': images[0].url}
    if len(images) > 1:
        links = '\n'.join(f"- [{a.filename}]({a.url})" for a in images[1:])
        field = {'name': 'Attachments', 'value': truncate(links, FIELD_VALUE_LIMIT)}
        embed['fields'] = [field]
        used += len(field['name']) + len(field['value'])

    description_limit = min(DESCRIPTION_LIMIT, EMBED_TOTAL_LIMIT - used)
    embed['description'] = truncate(parsed.body_with_urls(), description_limit)

    payload: Dict[str, Any] = {'embeds': [embed]}

    if config.mention_role_id:
        payload['content'] = f"<@&{config.mention_role_id}>"
        payload['allowed_mentions'] = {'roles': [config.mention_role_id]}
    else:
        payload['allowed_mentions'] = {'parse': []}

    return payload


def send_message(payload: Dict[str, Any], config: DiscordConfig) -> None:
    """
    POST a payload to the webhook.

    Raises:
        WebhookDeliveryError: If the request fails or Discord rejects it
    """
    try:
        response = session.post(
            config.webhook_url,
            json=payload,
            timeout=REQUEST_TIMEOUT_SECONDS
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Failed to deliver Discord webhook message: {e}")
        raise WebhookDeliveryError(f"Unable to deliver Discord message: {e}") from e

    logger.info("Discord message delivered")


def publish(parsed: ParsedEmail, config: DiscordConfig) -> None:
    """Relay a decoded email to the Discord channel."""
    send_message(build_payload(parsed, config), config)
