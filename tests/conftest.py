"""
Pytest configuration and fixtures for test suite.

This file ensures proper path configuration for imports and provides
scripted fakes for the LLM, the embedder and the chat platform.
"""
import os
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root)) #for adding the project root to the Python path

# Keep the service built when chatbot.main is imported away from the working directory
os.environ["DATABASE_PATH"] = os.path.join(tempfile.mkdtemp(), "chatbot-app.db")

from chatbot.confirmation import TicketConfirmationResolver
from chatbot.chat_platform import PlatformChannel
from chatbot.history import ChatHistory
from chatbot.ledger import PendingActionLedger
from chatbot.models import ChatbotConfig, TicketCategory
from chatbot.rag import ContextRetriever, RagRepository
from chatbot.service import ChatbotService
from chatbot.storage import ChatbotConfigRepository, TicketRepository, init_db


def make_completion(content=None, tool_calls=None):
    """Build an object shaped like an OpenAI ChatCompletion."""
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_tool_call(name, arguments):
    return SimpleNamespace(id="call_1", type="function", function=SimpleNamespace(name=name, arguments=arguments))


class FakeLLM:
    """Returns scripted completions in order and records every call."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []

    def invoke(self, messages, model, max_tokens=2000, temperature=0.7, tools=None, tool_choice=None):
        self.calls.append({
            "messages": messages,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "tools": tools,
            "tool_choice": tool_choice
        })
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise AssertionError("FakeLLM received more calls than scripted responses")
        return self.responses.pop(0)


_VOCABULARY = ["refund", "billing", "invoice", "discord", "bot", "server"]


class FakeEmbedder:
    """Bag-of-words embedder over a tiny vocabulary (plus a bias term)."""

    def __init__(self):
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        words = text.lower().replace(".", " ").replace(",", " ").split()
        return [float(words.count(term)) for term in _VOCABULARY] + [0.1]


class FakePlatform:
    """Records channel operations; individual operations can be made to fail."""

    def __init__(self, fail_create=False, fail_rename=False, fail_grant=False, fail_send=False):
        self.fail_create = fail_create
        self.fail_rename = fail_rename
        self.fail_grant = fail_grant
        self.fail_send = fail_send
        self.created = []
        self.renamed = []
        self.granted = []
        self.sent = []

    def create_private_channel(self, guild_id, name, parent_id, member_ids):
        if self.fail_create:
            raise RuntimeError("Missing Permissions")
        channel = PlatformChannel(id=str(9000 + len(self.created)), name=name)
        self.created.append({"guild_id": guild_id, "name": name, "parent_id": parent_id, "member_ids": member_ids, "channel": channel})
        return channel

    def rename_channel(self, channel_id, name):
        if self.fail_rename:
            raise RuntimeError("rate limited")
        self.renamed.append((channel_id, name))

    def grant_role_access(self, channel_id, role_id):
        if self.fail_grant:
            raise RuntimeError("Unknown Role")
        self.granted.append((channel_id, role_id))

    def send_message(self, channel_id, content, card=None):
        if self.fail_send:
            raise RuntimeError("Cannot send messages to this channel")
        self.sent.append({"channel_id": channel_id, "content": content, "card": card})


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "chatbot-test.db")
    init_db(path)
    return path


@pytest.fixture
def chatbot_config():
    return ChatbotConfig(
        guild_id="g1",
        channel_id="ch1",
        chatbot_name="Salt",
        response_type="friendly and concise",
        model_name="gpt-4o-mini",
        api_key="test-key"
    )


@pytest.fixture
def ticket_repo(db_path):
    return TicketRepository(db_path)


@pytest.fixture
def billing_category(ticket_repo):
    return ticket_repo.upsert_ticket_category(TicketCategory(
        id="c1",
        guild_id="g1",
        name="Billing",
        support_role_id="role-support",
        emoji="💳",
        category_id="discord-category-1"
    ))


@pytest.fixture
def ledger():
    return PendingActionLedger()


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def history_factory(db_path):
    def factory(user_id, guild_id):
        return ChatHistory(db_path, user_id, guild_id, limit=20)
    return factory


@pytest.fixture
def service(db_path, ticket_repo, ledger, platform, embedder, fake_llm, history_factory):
    return ChatbotService(
        config_repo=ChatbotConfigRepository(db_path),
        ticket_repo=ticket_repo,
        retriever=ContextRetriever(RagRepository(db_path), embedder, top_k=5),
        history_factory=history_factory,
        confirmation_resolver=TicketConfirmationResolver(ledger, ticket_repo, platform),
        ledger=ledger,
        llm_factory=lambda config: fake_llm
    )
