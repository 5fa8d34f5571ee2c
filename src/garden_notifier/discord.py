"""Discord API client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

import aiohttp

from .models import ChannelInfo, GuildInfo, SentMessage
from .utils import RateLimiter

DEFAULT_API_BASE = "https://discord.com/api/v10"
_USER_AGENT = "DiscordBot (https://github.com/garden-notifier, 1.0)"
_GUILD_PAGE_SIZE = 200
_MAX_RETRY_AFTER = 30.0

GUILD_TEXT_CHANNEL = 0
OVERWRITE_ROLE = 0
OVERWRITE_MEMBER = 1
VIEW_CHANNEL = 1 << 10
SEND_MESSAGES = 1 << 11


logger = logging.getLogger(__name__)


class DiscordAPIError(Exception):
    """Discord rejected a request or could not be reached."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class DiscordClient:
    """Thin asynchronous wrapper around the Discord REST API for a bot user."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        rate_per_second: float = 5.0,
    ):
        self._session = session
        self._token = _normalize_token(token)
        self._api_base = api_base.rstrip("/")
        self._rate = RateLimiter(rate_per_second)

    async def fetch_current_user(self) -> Mapping[str, Any] | None:
        try:
            data = await self._request("GET", "/users/@me")
        except DiscordAPIError as exc:
            logger.warning("Failed to fetch bot user: %s", exc)
            return None
        return data if isinstance(data, Mapping) else None

    async def list_guilds(self) -> list[GuildInfo] | None:
        """Return every guild the bot is a member of, or ``None`` on failure."""

        guilds: list[GuildInfo] = []
        after: str | None = None
        while True:
            params = {"limit": str(_GUILD_PAGE_SIZE)}
            if after:
                params["after"] = after
            try:
                data = await self._request("GET", "/users/@me/guilds", params=params)
            except DiscordAPIError as exc:
                logger.warning("Failed to list guilds: %s", exc)
                return None
            if not isinstance(data, Sequence):
                return guilds
            page = [
                GuildInfo(id=str(entry["id"]), name=str(entry.get("name") or ""))
                for entry in data
                if isinstance(entry, Mapping) and entry.get("id")
            ]
            guilds.extend(page)
            if len(data) < _GUILD_PAGE_SIZE or not page:
                return guilds
            after = page[-1].id

    async def fetch_guild_channels(self, guild_id: str) -> list[ChannelInfo] | None:
        try:
            data = await self._request("GET", f"/guilds/{guild_id}/channels")
        except DiscordAPIError as exc:
            logger.warning("Failed to fetch channels of guild %s: %s", guild_id, exc)
            return None
        if not isinstance(data, Sequence):
            return []
        return [_parse_channel(entry, guild_id) for entry in data if isinstance(entry, Mapping)]

    async def create_text_channel(
        self,
        guild_id: str,
        name: str,
        *,
        permission_overwrites: Sequence[Mapping[str, Any]] = (),
    ) -> ChannelInfo:
        payload: dict[str, Any] = {"name": name, "type": GUILD_TEXT_CHANNEL}
        if permission_overwrites:
            payload["permission_overwrites"] = list(permission_overwrites)
        data = await self._request("POST", f"/guilds/{guild_id}/channels", json=payload)
        if not isinstance(data, Mapping) or not data.get("id"):
            raise DiscordAPIError("Discord returned no channel id")
        return _parse_channel(data, guild_id)

    async def send_message(
        self, channel_id: str, *, embeds: Sequence[Mapping[str, Any]]
    ) -> SentMessage:
        data = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            json={"embeds": list(embeds)},
        )
        if not isinstance(data, Mapping) or not data.get("id"):
            raise DiscordAPIError("Discord returned no message id")
        return SentMessage(
            channel_id=str(data.get("channel_id") or channel_id),
            message_id=str(data["id"]),
        )

    async def delete_message(self, message: SentMessage) -> bool:
        """Delete ``message``; failures are logged and reported as ``False``."""

        try:
            await self._request(
                "DELETE",
                f"/channels/{message.channel_id}/messages/{message.message_id}",
            )
        except DiscordAPIError as exc:
            logger.debug(
                "Could not delete message %s in channel %s: %s",
                message.message_id,
                message.channel_id,
                exc,
            )
            return False
        return True

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        headers = {
            "Authorization": self._token,
            "User-Agent": _USER_AGENT,
            "Accept": "application/json",
        }
        url = f"{self._api_base}{path}"

        for attempt in range(2):
            await self._rate.wait()
            try:
                timeout_cfg = aiohttp.ClientTimeout(total=15)
                async with self._session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json,
                    timeout=timeout_cfg,
                ) as resp:
                    status = resp.status
                    if status == 429 and attempt == 0:
                        delay = await _retry_after(resp)
                        logger.info(
                            "Discord rate limited %s %s, retrying in %.1fs",
                            method,
                            path,
                            delay,
                        )
                        await asyncio.sleep(delay)
                        continue
                    if status >= 400:
                        body = await resp.text()
                        raise DiscordAPIError(
                            f"Discord returned status {status} for {method} {path}: "
                            f"{body[:200]}",
                            status=status,
                        )
                    if status == 204:
                        return None
                    return await resp.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise DiscordAPIError(
                    f"Failed to reach Discord for {method} {path}: {exc}"
                ) from exc
            except ValueError as exc:
                raise DiscordAPIError(
                    f"Discord sent malformed JSON for {method} {path}"
                ) from exc
        raise DiscordAPIError(f"Discord kept rate limiting {method} {path}", status=429)


def _normalize_token(token: str) -> str:
    stripped = (token or "").strip()
    if stripped.lower().startswith("bot "):
        return f"Bot {stripped[4:].strip()}"
    return f"Bot {stripped}"


async def _retry_after(resp: aiohttp.ClientResponse) -> float:
    delay = 1.0
    try:
        payload = await resp.json(content_type=None)
    except ValueError:
        payload = None
    if isinstance(payload, Mapping) and payload.get("retry_after") is not None:
        try:
            delay = float(payload["retry_after"])
        except (TypeError, ValueError):
            pass
    else:
        header = resp.headers.get("Retry-After")
        if header:
            try:
                delay = float(header)
            except ValueError:
                pass
    return min(max(delay, 0.0), _MAX_RETRY_AFTER)


def _parse_channel(payload: Mapping[str, Any], guild_id: str | None) -> ChannelInfo:
    channel_type_raw = payload.get("type")
    try:
        channel_type = int(str(channel_type_raw))
    except (TypeError, ValueError):
        channel_type = 0
    return ChannelInfo(
        id=str(payload.get("id") or ""),
        type=channel_type,
        guild_id=str(payload.get("guild_id") or guild_id or "") or None,
        name=str(payload.get("name") or "") or None,
    )
