"""System prompts for chat completions and title generation."""

REASONING_CHAT_MODEL: str = "chat-model-reasoning"

REGULAR_PROMPT: str = "You are a friendly assistant! Keep your responses concise and helpful."

FORMATTING_PROMPT: str = """When you write code, put it in fenced code blocks and name the language after the opening backticks, e.g. ```python. Default to Python unless the user asks for another language.

Use Markdown for structure (lists, tables, headings) only when it makes the answer easier to read. Prefer short paragraphs over long ones."""

TITLE_PROMPT: str = """- you will generate a short title based on the first message a user begins a conversation with
- ensure it is not more than 80 characters long
- the title should be a summary of the user's message
- do not use quotes or colons"""


def system_prompt(selected_chat_model: str) -> str:
    """
    Build the system prompt for the selected chat model variant.

    The reasoning variant gets the bare assistant prompt; every other
    variant also gets the formatting guidance.
    """
    if selected_chat_model == REASONING_CHAT_MODEL:
        return REGULAR_PROMPT
    return f"{REGULAR_PROMPT}\n\n{FORMATTING_PROMPT}"
