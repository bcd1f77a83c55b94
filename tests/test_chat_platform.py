from datetime import datetime, timezone

import pytest
from chatbot.chat_platform import (
    MEMBER_PERMISSIONS,
    VIEW_CHANNEL,
    DiscordPlatform,
    render_card,
)
from chatbot.ui import build_confirmation_card, parse_confirmation_custom_id


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.content = b"{}" if payload is not None else b""

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")

    def json(self):
        return self.payload


class FakeSession:
    """Stands in for requests.Session, answering by (method, path suffix)."""

    def __init__(self):
        self.requests = []

    def request(self, method, url, json=None, timeout=None):
        self.requests.append((method, url, json))
        if url.endswith("/users/@me"):
            return FakeResponse({"id": "bot-1"})
        if method == "POST" and url.endswith("/channels"):
            return FakeResponse({"id": "777", "name": json["name"]})
        return FakeResponse(status_code=204)


@pytest.fixture
def discord():
    platform = DiscordPlatform("token", api_base="https://discord.test/api/")
    platform.session = FakeSession()
    return platform


def test_requires_token():
    with pytest.raises(ValueError):
        DiscordPlatform("")


def test_create_private_channel(discord):
    channel = discord.create_private_channel("g1", "ticket-new", "parent-9", ["u1"])

    assert channel.id == "777"
    assert channel.mention == "<#777>"

    method, url, body = discord.session.requests[-1]
    assert (method, url) == ("POST", "https://discord.test/api/guilds/g1/channels")
    assert body["parent_id"] == "parent-9"
    overwrites = {o["id"]: o for o in body["permission_overwrites"]}
    assert overwrites["g1"]["deny"] == str(VIEW_CHANNEL)
    assert overwrites["u1"]["allow"] == str(MEMBER_PERMISSIONS)
    assert "bot-1" in overwrites


def test_rename_grant_and_send(discord):
    discord.rename_channel("777", "ticket-0001")
    discord.grant_role_access("777", "role-1")
    discord.send_message("777", "<@u1>")

    assert [(m, u) for m, u, _ in discord.session.requests] == [
        ("PATCH", "https://discord.test/api/channels/777"),
        ("PUT", "https://discord.test/api/channels/777/permissions/role-1"),
        ("POST", "https://discord.test/api/channels/777/messages"),
    ]
    assert discord.session.requests[0][2] == {"name": "ticket-0001"}
    assert discord.session.requests[2][2] == {"content": "<@u1>"}


def test_render_confirmation_card():
    card = build_confirmation_card("ticket_confirm_u1_5", "Let me open a ticket.", "Billing", "help")

    payload = render_card(card)

    embed = payload["embeds"][0]
    assert embed["title"] == "🎫 Create Ticket Confirmation"
    assert embed["footer"] == {"text": "This will create a private support channel for you"}
    buttons = payload["components"][0]["components"]
    assert [b["custom_id"] for b in buttons] == ["ticket_confirm_yes_ticket_confirm_u1_5", "ticket_confirm_no_ticket_confirm_u1_5"]
    assert [b["style"] for b in buttons] == [3, 2]


def test_render_card_timestamp():
    card = build_confirmation_card("id", None, "Billing", "help").model_copy(
        update={"timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc)}
    )
    assert render_card(card)["embeds"][0]["timestamp"] == "2024-01-01T00:00:00+00:00"
    assert "I'd like to create a ticket" in card.description


def test_parse_confirmation_custom_id():
    assert parse_confirmation_custom_id("ticket_confirm_yes_ticket_confirm_u1_5") == ("ticket_confirm_u1_5", True)
    assert parse_confirmation_custom_id("ticket_confirm_no_ticket_confirm_u1_5") == ("ticket_confirm_u1_5", False)
    assert parse_confirmation_custom_id("ticket_close") is None
