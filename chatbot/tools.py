"""
Tool definitions for the chatbot's function-calling stage.

The assistant exposes a single tool, create_ticket, whose category parameter is
an enum built from the guild's enabled ticket categories. The model sees the
category names; resolve_category maps the chosen name back to a category id.
"""

import logging
from typing import Dict, Any, List, Optional

from chatbot.models import TicketCategoryChoice

logger = logging.getLogger(__name__)

CREATE_TICKET_TOOL_NAME = "create_ticket"


def create_dynamic_ticket_tool(categories: List[TicketCategoryChoice]) -> List[Dict[str, Any]]:
    """
    Return OpenAI tool definitions for the create_ticket function.

    Args:
        categories: Enabled ticket categories of the guild, in display order.
                    Their names become the ticket_category enum values.

    Returns:
        List with one tool definition dictionary:
        - type: Always "function"
        - function: Function schema with name, description, and parameters

    Raises:
        ValueError: If no categories are given. Callers must skip the tool
                    stage entirely instead of offering an empty enum.

    Usage:
        tools = create_dynamic_ticket_tool([TicketCategoryChoice(id="c1", name="Billing")])
        llm.invoke(messages, model, tools=tools, tool_choice="auto")
    """
    if not categories:
        raise ValueError("At least one ticket category is required to build the create_ticket tool")

    category_names = [category.name for category in categories]

    return [
        {
            "type": "function",
            "function": {
                "name": CREATE_TICKET_TOOL_NAME,
                "description": "Create a support ticket so that staff can help the user in a private channel. Use this when the user explicitly asks for a ticket, is not satisfied with the answer, or the issue needs human intervention.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "ticket_category": {
                            "type": "string",
                            "description": "The ticket category that best matches the user's issue",
                            "enum": category_names
                        },
                        "message": {
                            "type": "string",
                            "description": "A short, friendly message explaining to the user why a ticket is being created"
                        }
                    },
                    "required": ["ticket_category", "message"]
                }
            }
        }
    ]


def resolve_category(name: Optional[str], categories: List[TicketCategoryChoice]) -> Optional[TicketCategoryChoice]:
    """Map a category name chosen by the model back to its category (first match wins)."""
    if not name:
        return None

    matches = [category for category in categories if category.name == name]
    if not matches:
        return None

    if len(matches) > 1:
        logger.warning(
            f"[TOOLS] Category name '{name}' is shared by {len(matches)} categories, "
            f"using the first one ({matches[0].id})"
        )
    return matches[0]
