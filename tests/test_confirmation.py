import pytest
from chatbot.confirmation import (
    CANCELLED_MESSAGE,
    CATEGORY_MISSING_MESSAGE,
    CREATION_FAILED_MESSAGE,
    EXPIRED_MESSAGE,
    TicketConfirmationResolver,
    ticket_channel_name,
)
from chatbot.models import PendingTicketCreation, TicketCategory
from conftest import FakePlatform


def _pending(ledger, category_id="c1", user_id="u1", user_message="I want a refund, please make a ticket"):
    confirmation_id = ledger.new_confirmation_id(user_id)
    ledger.put(confirmation_id, PendingTicketCreation(
        confirmation_id=confirmation_id,
        category_id=category_id,
        user_message=user_message,
        guild_id="g1",
        channel_id="ch1",
        user_id=user_id,
        tool_message="I'll create a ticket for your refund request."
    ))
    return confirmation_id


@pytest.fixture
def resolver(ledger, ticket_repo, platform):
    return TicketConfirmationResolver(ledger, ticket_repo, platform)


def test_accept_creates_exactly_one_ticket(resolver, ledger, ticket_repo, platform, billing_category):
    """End-to-end: accepting creates the ticket once, a second click reports expiry"""
    confirmation_id = _pending(ledger)

    result = resolver.handle_ticket_confirmation(confirmation_id, True)

    assert result.success is True
    assert result.ticket_channel == "<#9000>"
    assert result.message == "Ticket created successfully! Please check <#9000> for further assistance."
    assert confirmation_id not in ledger

    tickets = ticket_repo.get_tickets("g1")
    assert len(tickets) == 1
    assert tickets[0].ticket_number == 1
    assert tickets[0].creator_id == "u1"
    assert tickets[0].channel_id == "9000"
    assert tickets[0].category_id == "c1"
    assert tickets[0].status == "open"

    created = platform.created[0]
    assert created["parent_id"] == "discord-category-1"
    assert created["member_ids"] == ["u1"]
    assert platform.renamed == [("9000", "ticket-0001")]
    assert platform.granted == [("9000", "role-support")]

    again = resolver.handle_ticket_confirmation(confirmation_id, True)
    assert again.success is False
    assert again.message == EXPIRED_MESSAGE
    assert len(ticket_repo.get_tickets("g1")) == 1


def test_welcome_message_content(resolver, ledger, platform, billing_category):
    confirmation_id = _pending(ledger)

    resolver.handle_ticket_confirmation(confirmation_id, True)

    assert len(platform.sent) == 1
    sent = platform.sent[0]
    assert sent["channel_id"] == "9000"
    assert sent["content"] == "<@u1>"

    card = sent["card"]
    assert card.title == "Ticket #1"
    assert card.color == "green"
    assert "Welcome to your ticket in the **Billing** category!" in card.description
    assert "*I want a refund, please make a ticket*" in card.description
    fields = {field.name: field.value for field in card.fields}
    assert fields["Ticket ID"] == "#1"
    assert fields["Category"] == "💳 Billing"
    assert fields["Status"] == "🟢 Open"
    assert fields["Created By"] == "<@u1>"
    assert fields["Created At"].startswith("<t:")
    assert [action.custom_id for action in card.actions] == ["ticket_claim", "ticket_close"]


def test_welcome_message_mentions_support_team(ledger, ticket_repo, platform):
    ticket_repo.upsert_ticket_category(TicketCategory(
        id="c2",
        guild_id="g1",
        name="Technical Support",
        support_role_id="role-tech",
        category_id="discord-category-2",
        welcome_message="Thanks for reaching out to tech support.",
        include_support_team=True
    ))
    resolver = TicketConfirmationResolver(ledger, ticket_repo, platform)

    result = resolver.handle_ticket_confirmation(_pending(ledger, category_id="c2"), True)

    assert result.success is True
    sent = platform.sent[0]
    assert sent["content"] == "<@u1> | <@&role-tech>"
    assert sent["card"].description == "Thanks for reaching out to tech support."
    assert {f.name: f.value for f in sent["card"].fields}["Category"] == "🎫 Technical Support"


def test_cancel_creates_nothing(resolver, ledger, ticket_repo, platform, billing_category):
    confirmation_id = _pending(ledger)

    result = resolver.handle_ticket_confirmation(confirmation_id, False)

    assert result.success is True
    assert result.message == CANCELLED_MESSAGE
    assert result.ticket_channel is None
    assert confirmation_id not in ledger
    assert platform.created == []
    assert ticket_repo.get_tickets("g1") == []


def test_unknown_confirmation_id(resolver):
    result = resolver.handle_ticket_confirmation("ticket_confirm_u1_123", True)

    assert result.success is False
    assert result.message == EXPIRED_MESSAGE


def test_missing_category(resolver, ledger, platform):
    confirmation_id = _pending(ledger, category_id="deleted-category")

    result = resolver.handle_ticket_confirmation(confirmation_id, True)

    assert result.success is False
    assert result.message == CATEGORY_MISSING_MESSAGE
    assert confirmation_id not in ledger
    assert platform.created == []


def test_channel_creation_failure(ledger, ticket_repo, billing_category):
    platform = FakePlatform(fail_create=True)
    resolver = TicketConfirmationResolver(ledger, ticket_repo, platform)
    confirmation_id = _pending(ledger)

    result = resolver.handle_ticket_confirmation(confirmation_id, True)

    assert result.success is False
    assert result.message == CREATION_FAILED_MESSAGE
    assert ticket_repo.get_tickets("g1") == []
    # the pending entry is consumed even when creation fails
    assert confirmation_id not in ledger


def test_accept_without_platform_fails_but_cancel_works(ledger, ticket_repo, billing_category):
    resolver = TicketConfirmationResolver(ledger, ticket_repo, None)

    accepted = resolver.handle_ticket_confirmation(_pending(ledger), True)
    cancelled = resolver.handle_ticket_confirmation(_pending(ledger), False)

    assert (accepted.success, accepted.message) == (False, CREATION_FAILED_MESSAGE)
    assert (cancelled.success, cancelled.message) == (True, CANCELLED_MESSAGE)
    assert ticket_repo.get_tickets("g1") == []
    assert len(ledger) == 0


@pytest.mark.parametrize("failure", ["fail_rename", "fail_grant", "fail_send"])
def test_channel_setup_failures_are_not_fatal(ledger, ticket_repo, billing_category, failure, caplog):
    platform = FakePlatform(**{failure: True})
    resolver = TicketConfirmationResolver(ledger, ticket_repo, platform)

    with caplog.at_level("WARNING"):
        result = resolver.handle_ticket_confirmation(_pending(ledger), True)

    assert result.success is True
    assert result.ticket_channel == "<#9000>"
    assert len(ticket_repo.get_tickets("g1")) == 1
    assert "[TICKET_CONFIRMATION]" in caplog.text


def test_category_without_support_role(ledger, ticket_repo, platform):
    ticket_repo.upsert_ticket_category(TicketCategory(id="c3", guild_id="g1", name="General", category_id="dc3"))
    resolver = TicketConfirmationResolver(ledger, ticket_repo, platform)

    result = resolver.handle_ticket_confirmation(_pending(ledger, category_id="c3"), True)

    assert result.success is True
    assert platform.granted == []


def test_ticket_numbers_are_sequential(resolver, ledger, ticket_repo, platform, billing_category):
    for user_id in ("u1", "u2", "u3"):
        assert resolver.handle_ticket_confirmation(_pending(ledger, user_id=user_id), True).success

    assert [t.ticket_number for t in ticket_repo.get_tickets("g1")] == [1, 2, 3]
    assert [name for _, name in platform.renamed] == ["ticket-0001", "ticket-0002", "ticket-0003"]


def test_ticket_channel_name():
    assert ticket_channel_name(7) == "ticket-0007"
    assert ticket_channel_name(12345) == "ticket-12345"
