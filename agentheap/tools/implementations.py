"""Tool implementations — the actual logic behind each built-in tool.

Interactive tools never block: they return a result marked `waitingForUser`
and the turn orchestrator ends the turn so the human can answer.
"""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_QUESTION = "Please provide the information or confirmation."
DEFAULT_CREDENTIAL_QUESTION = "Please enter the requested credential."


def clean_options(options: Any) -> list[str]:
    """Non-blank string choices. Anything but a list (e.g. "yes, no") means no options."""
    if not isinstance(options, list):
        return []
    return [o.strip() for o in options if isinstance(o, str) and o.strip()]


def impl_ask_user(question: str = "", options: list | None = None, reason: str | None = None, **_: Any) -> dict:
    result: dict[str, Any] = {
        "waitingForUser": True,
        "question": question.strip() if isinstance(question, str) and question.strip() else DEFAULT_QUESTION,
    }
    clean = clean_options(options)
    if clean:
        result["options"] = clean
    if isinstance(reason, str) and reason.strip():
        result["reason"] = reason.strip()
    logger.info(f"ask_user: {result['question']}")
    return result


def normalize_credential_key(key: str) -> str:
    """'OpenAI API Key' -> 'openai_api_key'."""
    return re.sub(r"\s+", "_", key.strip().lower())


def impl_ask_credentials(question: str | None = None, credentialKey: str = "", **_: Any) -> dict:
    key = normalize_credential_key(credentialKey) if isinstance(credentialKey, str) else ""
    if not key:
        return {
            "waitingForUser": True,
            "credentialRequest": True,
            "question": "Please provide a credential key.",
            "credentialKey": "credential",
        }
    logger.info(f"ask_credentials: {key}")
    return {
        "waitingForUser": True,
        "credentialRequest": True,
        "question": question.strip() if isinstance(question, str) and question.strip() else DEFAULT_CREDENTIAL_QUESTION,
        "credentialKey": key,
    }


def impl_format_response(summary: str = "", needsInput: str | None = None, **_: Any) -> dict:
    result: dict[str, Any] = {"formatted": True, "summary": summary.strip() if isinstance(summary, str) else ""}
    if isinstance(needsInput, str) and needsInput.strip():
        result["needsInput"] = needsInput.strip()
        result["waitingForUser"] = True
        result["question"] = result["needsInput"]
    return result
