"""Built-in tool definitions (ToolDef) for interactive turns."""

from agentheap.models import ToolDef

ASK_USER = ToolDef(
    name="ask_user",
    description="Ask the user a question and wait for their reply before continuing.",
    parameters={
        "type": "object",
        "properties": {
            "question": {"type": "string", "description": "The question to show the user"},
            "options": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Optional choices the user can pick from",
            },
            "reason": {"type": "string", "description": "Why you need this information"},
        },
        "required": ["question"],
    },
    guidance="Use only when you cannot proceed without the user's input. Stop after calling it; "
    "the user answers in the next message.",
)

ASK_CREDENTIALS = ToolDef(
    name="ask_credentials",
    description="Ask the user for a secret (API key, token, password).",
    parameters={
        "type": "object",
        "properties": {
            "question": {"type": "string", "description": "What to ask for, e.g. 'Enter your OpenAI API key'"},
            "credentialKey": {"type": "string", "description": "Storage key for the secret, e.g. openai_api_key"},
        },
        "required": ["credentialKey"],
    },
    guidance="Never ask for secrets with ask_user. Use a stable snake_case credentialKey.",
)

FORMAT_RESPONSE = ToolDef(
    name="format_response",
    description="Present a final summary to the user, optionally with a follow-up question.",
    parameters={
        "type": "object",
        "properties": {
            "summary": {"type": "string", "description": "What was done / what the results mean"},
            "needsInput": {"type": "string", "description": "Question for the user, if you need a reply"},
        },
        "required": ["summary"],
    },
)
