"""Hook stdin payloads and the permission decision written to stdout."""

import json
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

ASK_USER_QUESTION = "AskUserQuestion"
EXIT_PLAN_MODE = "ExitPlanMode"


class HookPayload(BaseModel):
    """Stdin JSON: { tool_name, tool_input, cwd, session_id, hook_event_name }."""

    model_config = ConfigDict(extra="ignore")

    tool_name: str = "Unknown"
    tool_input: dict[str, Any] = Field(default_factory=dict)
    cwd: Optional[str] = None
    session_id: Optional[str] = None
    hook_event_name: Optional[str] = None


class QuestionOption(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str
    description: Optional[str] = None


class QuestionItem(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    question: str = "Question"
    header: Optional[str] = None
    options: list[QuestionOption] = Field(default_factory=list)
    multi_select: bool = Field(default=False, alias="multiSelect")


def parse_payload(raw: str) -> Optional[HookPayload]:
    """Parse hook stdin. Returns None for anything that is not a JSON object."""
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return HookPayload.model_validate(data)
    except ValidationError:
        return None


def parse_questions(tool_input: dict[str, Any]) -> list[QuestionItem]:
    questions = []
    for item in tool_input.get("questions") or []:
        try:
            questions.append(QuestionItem.model_validate(item))
        except ValidationError:
            continue
    return questions


def permission_decision(behavior: Literal["allow", "deny"]) -> dict[str, Any]:
    """The PermissionRequest hook output understood by the assistant."""
    return {
        "hookSpecificOutput": {
            "hookEventName": "PermissionRequest",
            "decision": {"behavior": behavior},
        }
    }
