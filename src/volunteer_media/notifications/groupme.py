"""GroupMe bot posting."""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..config import config

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000
REQUEST_TIMEOUT_SECONDS = 10
ELLIPSIS = "..."


class GroupMeError(Exception):
    """Raised when a bot post is rejected or cannot be delivered."""


def truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return text[:max_length]
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def format_announcement(title: str, content: str) -> str:
    return f"📢 {title}\n\n{content}"


class GroupMeService:
    """Posts messages to group chats through GroupMe bots."""

    def __init__(self, api_url: Optional[str] = None, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.api_url = api_url or config.groupme_api_url
        self.timeout = timeout

    async def send_message(self, bot_id: str, text: str) -> None:
        """
        Post ``text`` as the given bot.

        Raises:
            GroupMeError: On missing arguments, transport errors or any
                response other than 200/201
        """
        if not bot_id:
            raise GroupMeError("bot ID is required")
        if not text:
            raise GroupMeError("message text is required")

        payload = {"bot_id": bot_id, "text": truncate_message(text)}

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.api_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status not in (200, 201):
                        raise GroupMeError(f"GroupMe API error: status {response.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GroupMeError(f"failed to send GroupMe message: {e}")

        logger.info("GroupMe message posted")

    async def send_announcement(self, bot_id: str, title: str, content: str) -> None:
        if not title:
            raise GroupMeError("title is required")
        if not content:
            raise GroupMeError("content is required")
        await self.send_message(bot_id, format_announcement(title, content))


_groupme_service: Optional[GroupMeService] = None


def get_groupme_service() -> GroupMeService:
    """FastAPI dependency returning the process-wide GroupMe client."""
    global _groupme_service
    if _groupme_service is None:
        _groupme_service = GroupMeService()
    return _groupme_service
