import logging
from typing import Any, Dict, List, Optional, Protocol

import requests #for calling the Discord REST API
from pydantic import BaseModel

from chatbot.models import MessageCard

logger = logging.getLogger(__name__)

# Discord permission bits
VIEW_CHANNEL = 1 << 10
SEND_MESSAGES = 1 << 11
MANAGE_CHANNELS = 1 << 4
READ_MESSAGE_HISTORY = 1 << 16

MEMBER_PERMISSIONS = VIEW_CHANNEL | SEND_MESSAGES | READ_MESSAGE_HISTORY
BOT_PERMISSIONS = MEMBER_PERMISSIONS | MANAGE_CHANNELS

_OVERWRITE_ROLE = 0
_OVERWRITE_MEMBER = 1
_GUILD_TEXT_CHANNEL = 0

_COLORS = {"blue": 0x3498DB, "green": 0x57F287}
_BUTTON_STYLES = {"primary": 1, "secondary": 2, "success": 3, "danger": 4}


class PlatformChannel(BaseModel):
    id: str
    name: str

    @property
    def mention(self) -> str:
        return f"<#{self.id}>"


class ChatPlatform(Protocol):
    """Channel and message operations the chatbot needs from the chat platform."""

    def create_private_channel(self, guild_id: str, name: str, parent_id: Optional[str], member_ids: List[str]) -> PlatformChannel: ...

    def rename_channel(self, channel_id: str, name: str) -> None: ...

    def grant_role_access(self, channel_id: str, role_id: str) -> None: ...

    def send_message(self, channel_id: str, content: str, card: Optional[MessageCard] = None) -> None: ...


def render_card(card: MessageCard) -> Dict[str, Any]:
    """Render a MessageCard into a Discord message payload (embeds + components)."""
    embed: Dict[str, Any] = {
        "title": card.title,
        "description": card.description,
        "color": _COLORS[card.color],
    }
    if card.fields:
        embed["fields"] = [{"name": f.name, "value": f.value, "inline": f.inline} for f in card.fields]
    if card.footer:
        embed["footer"] = {"text": card.footer}
    if card.timestamp:
        embed["timestamp"] = card.timestamp.isoformat()

    payload: Dict[str, Any] = {"embeds": [embed]}
    if card.actions:
        buttons = []
        for action in card.actions:
            button: Dict[str, Any] = {
                "type": 2,
                "style": _BUTTON_STYLES[action.style],
                "label": action.label,
                "custom_id": action.custom_id,
            }
            if action.emoji:
                button["emoji"] = {"name": action.emoji}
            buttons.append(button)
        payload["components"] = [{"type": 1, "components": buttons}]
    return payload


class DiscordPlatform:
    """
    ChatPlatform implementation on top of the Discord REST API.

    Private channels deny @everyone (whose role id equals the guild id) and
    allow the bot and the listed members.
    """

    def __init__(self, token: str, api_base: str = "https://discord.com/api/v10", timeout_seconds: int = 10):
        if not token:
            raise ValueError("DISCORD_BOT_TOKEN environment variable is required")
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bot {token}",
            "Content-Type": "application/json"
        })
        self._bot_user_id: Optional[str] = None

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        response = self.session.request(method, f"{self.api_base}{path}", json=json, timeout=self.timeout_seconds)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @property
    def bot_user_id(self) -> str:
        if self._bot_user_id is None:
            self._bot_user_id = str(self._request("GET", "/users/@me")["id"])
        return self._bot_user_id

    def create_private_channel(self, guild_id: str, name: str, parent_id: Optional[str], member_ids: List[str]) -> PlatformChannel:
        overwrites = [
            {"id": guild_id, "type": _OVERWRITE_ROLE, "allow": "0", "deny": str(VIEW_CHANNEL)},
            {"id": self.bot_user_id, "type": _OVERWRITE_MEMBER, "allow": str(BOT_PERMISSIONS), "deny": "0"},
        ]
        overwrites.extend(
            {"id": member_id, "type": _OVERWRITE_MEMBER, "allow": str(MEMBER_PERMISSIONS), "deny": "0"}
            for member_id in member_ids
        )

        body: Dict[str, Any] = {
            "name": name,
            "type": _GUILD_TEXT_CHANNEL,
            "permission_overwrites": overwrites
        }
        if parent_id:
            body["parent_id"] = parent_id

        data = self._request("POST", f"/guilds/{guild_id}/channels", json=body)
        logger.debug(f"[DISCORD] Created channel {data['id']} in guild {guild_id}")
        return PlatformChannel(id=str(data["id"]), name=data.get("name", name))

    def rename_channel(self, channel_id: str, name: str) -> None:
        self._request("PATCH", f"/channels/{channel_id}", json={"name": name})

    def grant_role_access(self, channel_id: str, role_id: str) -> None:
        self._request(
            "PUT",
            f"/channels/{channel_id}/permissions/{role_id}",
            json={"type": _OVERWRITE_ROLE, "allow": str(MEMBER_PERMISSIONS), "deny": "0"}
        )

    def send_message(self, channel_id: str, content: str, card: Optional[MessageCard] = None) -> None:
        payload: Dict[str, Any] = {"content": content}
        if card is not None:
            payload.update(render_card(card))
        self._request("POST", f"/channels/{channel_id}/messages", json=payload)
