"""
Phone question tool.
"""

import json
from typing import Any, List, Optional

import requests
from pydantic import BaseModel, Field

from .. import state
from ..api_client import api_get, api_post
from ..mcp_app import mcp


NO_RESPONSE = "No response from user (timeout)"


class QuestionOption(BaseModel):
    label: str
    description: str


class Question(BaseModel):
    question: str
    header: str = Field(description="Short label displayed as a chip/tag (max 12 chars)")
    options: List[QuestionOption] = Field(min_length=2, max_length=4)
    multiSelect: bool = False


def build_payload(
    questions: Optional[List[Question]] = None,
    question: Optional[str] = None,
    options: Optional[List[str]] = None,
) -> dict:
    """Build the request payload. Raises ValueError when neither form is given."""
    if questions:
        if len(questions) > 4:
            raise ValueError("At most 4 questions can be asked at once.")
        return {"questions": [q.model_dump() if isinstance(q, BaseModel) else q for q in questions]}
    if question:
        return {"question": question, "options": list(options or [])}
    raise ValueError('Must provide either "questions" array or "question" string.')


def format_answer(wait_result: dict) -> str:
    """Render the wait result the way the caller expects it."""
    response = wait_result.get("response") or {}
    answer: Any = response.get("answer") if isinstance(response, dict) else None
    if not answer:
        return NO_RESPONSE
    # Multi-question answers come back as a map of question -> label
    if isinstance(answer, (dict, list)):
        return json.dumps({"answers": answer})
    return str(answer)


@mcp.tool()
def ask_user(
    questions: Optional[List[Question]] = None,
    question: Optional[str] = None,
    options: Optional[List[str]] = None,
) -> str:
    """Ask the user a question via their phone. Use the SAME parameters you would use for AskUserQuestion.

    Args:
        questions: 1-4 questions, each with question, header, 2-4 options
            (label + description) and multiSelect
        question: Simple question string (legacy format, prefer questions)
        options: Simple options list (legacy format, prefer questions)

    The user always gets an "Other" free-text option. Returns the answer text,
    or an answers object mapping question text to the selected label.
    """
    try:
        payload = build_payload(questions, question, options)
    except ValueError as e:
        return f"Error: {e}"

    try:
        created = api_post("/api/request", {"type": "question", "payload": payload})
        request_id = created.get("id")
        if not request_id:
            return "Error: Failed to create question request. Is the cc-mob server running?"

        result = api_get(
            f"/api/request/{request_id}/wait",
            timeout=(state.REQUEST_TIMEOUT, state.ASK_TIMEOUT),
        )
        return format_answer(result)
    except requests.exceptions.Timeout:
        return NO_RESPONSE
    except requests.exceptions.RequestException as e:
        return f"Error reaching cc-mob server: {e}"
