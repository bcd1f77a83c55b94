"""
System prompt construction for the chatbot.

The prompt is assembled from three optional parts on top of the persona header:
- the persona's response style (only when configured)
- tool usage guidelines (only when the create_ticket tool is offered)
- retrieved server knowledge (only when retrieval found something)
"""

from typing import Optional

from chatbot.models import ChatbotConfig


TOOL_USAGE_GUIDELINES = """

Tool Usage Guidelines:
- Use the create_ticket tool when:
  * User explicitly asks to create a ticket
  * User is not satisfied with your response and needs human help
  * The question requires human intervention to resolve
  * Technical issues that need staff assistance
  * Complex problems that can't be solved through chat
- Choose the most appropriate ticket category based on the user's issue
- Provide a helpful message explaining why a ticket is being created"""

CONTEXT_TEMPLATE = """

You have access to specific knowledge about this server/topic. Use the following context to answer questions when relevant:

{context}

When using this context:
- Reference the information naturally in your response
- If the context is relevant, use it to provide accurate, detailed answers
- If the context doesn't relate to the question, you can still provide general help
- Don't mention that you're using "context" or "knowledge base" explicitly"""


def build_system_prompt(config: ChatbotConfig, rag_context: Optional[str], include_tools: bool = False) -> str:
    """
    Build the system prompt for one LLM call.

    Args:
        config: Chatbot configuration providing the persona name and response style
        rag_context: Formatted retrieved context, or None when nothing relevant was found
        include_tools: Whether the create_ticket tool is attached to this call

    Returns:
        The complete system prompt string
    """
    system_prompt = f"You are {config.chatbot_name}, an AI assistant in a Discord server. "

    if config.response_type and config.response_type.strip():
        system_prompt += f"Your personality and response style: {config.response_type.strip()}. "

    system_prompt += f"""
Guidelines:
- Be helpful, informative, and engaging
- Keep responses concise but thorough
- Use Discord-friendly formatting when appropriate
- If you don't know something, say so honestly
- Stay in character as {config.chatbot_name}"""

    if include_tools:
        system_prompt += TOOL_USAGE_GUIDELINES

    if rag_context:
        system_prompt += CONTEXT_TEMPLATE.format(context=rag_context)

    return system_prompt
