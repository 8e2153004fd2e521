"""Pending prompt and response records exchanged through the prompt bridge.

All timestamps here are milliseconds since the epoch.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


def now_ms() -> int:
    return int(time.time() * 1000)


class TimedOut(Enum):
    """Outcome returned when no response arrived in time."""

    TIMED_OUT = "timed_out"


TIMED_OUT = TimedOut.TIMED_OUT


class PermissionAction(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    ALWAYS = "always"


@dataclass
class PendingPermission:
    workspace: str
    tool_name: str
    tool_input: dict[str, Any] = field(default_factory=dict)
    terminal_session_name: Optional[str] = None
    created_at: int = 0

    type = "permission"


@dataclass
class PendingPlan:
    workspace: str
    tool_name: str = "ExitPlanMode"
    tool_input: dict[str, Any] = field(default_factory=dict)
    terminal_session_name: Optional[str] = None
    created_at: int = 0

    type = "plan"


@dataclass
class PendingQuestion:
    workspace: str
    question_text: str
    option_texts: list[str] = field(default_factory=list)
    multi_select: bool = False
    selected_options: Optional[list[bool]] = None
    is_last: bool = True
    terminal_session_name: Optional[str] = None
    created_at: int = 0

    type = "question"

    def option_label(self, option_index: int) -> str:
        """Label for a 1-based option index, falling back to 'Option N'."""
        idx = option_index - 1
        if 0 <= idx < len(self.option_texts):
            return self.option_texts[idx]
        return f"Option {option_index}"


@dataclass
class PendingQuestionFreeText:
    workspace: str
    question_text: str
    terminal_session_name: Optional[str] = None
    created_at: int = 0

    type = "question-freetext"


PendingPrompt = Union[PendingPermission, PendingPlan, PendingQuestion, PendingQuestionFreeText]


@dataclass
class PermissionResponse:
    action: str
    responded_at: int = 0

    def __post_init__(self) -> None:
        if self.action not in {a.value for a in PermissionAction}:
            raise ValueError(f"Unknown permission action: {self.action!r}")


@dataclass
class QuickPermissionResponse:
    """Combined permission grant and question answer."""

    selected_option: int
    action: str = PermissionAction.ALLOW.value
    responded_at: int = 0


PromptResponse = Union[PermissionResponse, QuickPermissionResponse]


def pending_to_dict(prompt: PendingPrompt) -> dict[str, Any]:
    data: dict[str, Any] = {
        "type": prompt.type,
        "workspace": prompt.workspace,
        "tmuxSession": prompt.terminal_session_name,
    }
    if isinstance(prompt, (PendingPermission, PendingPlan)):
        data["toolName"] = prompt.tool_name
        data["toolInput"] = prompt.tool_input
    elif isinstance(prompt, PendingQuestion):
        data["questionText"] = prompt.question_text
        data["options"] = prompt.option_texts
        data["multiSelect"] = prompt.multi_select
        if prompt.selected_options is not None:
            data["selectedOptions"] = prompt.selected_options
        data["isLast"] = prompt.is_last
    else:
        data["questionText"] = prompt.question_text
    data["createdAt"] = prompt.created_at
    return data


def pending_from_dict(data: dict[str, Any]) -> PendingPrompt:
    """Rebuild a pending prompt from its record. Raises ValueError on unknown types."""
    kind = data.get("type")
    common = {
        "workspace": data.get("workspace") or "",
        "terminal_session_name": data.get("tmuxSession"),
        "created_at": int(data.get("createdAt") or 0),
    }

    if kind == PendingPermission.type:
        return PendingPermission(
            tool_name=data.get("toolName") or "Unknown",
            tool_input=data.get("toolInput") or {},
            **common,
        )
    if kind == PendingPlan.type:
        return PendingPlan(
            tool_name=data.get("toolName") or "ExitPlanMode",
            tool_input=data.get("toolInput") or {},
            **common,
        )
    if kind == PendingQuestion.type:
        return PendingQuestion(
            question_text=data.get("questionText") or "",
            option_texts=list(data.get("options") or []),
            multi_select=bool(data.get("multiSelect", False)),
            selected_options=data.get("selectedOptions"),
            is_last=bool(data.get("isLast", True)),
            **common,
        )
    if kind == PendingQuestionFreeText.type:
        return PendingQuestionFreeText(question_text=data.get("questionText") or "", **common)

    raise ValueError(f"Unknown pending prompt type: {kind!r}")


def response_to_dict(response: PromptResponse) -> dict[str, Any]:
    data: dict[str, Any] = {"action": response.action}
    if isinstance(response, QuickPermissionResponse):
        data["selectedOption"] = response.selected_option
    data["respondedAt"] = response.responded_at
    return data


def response_from_dict(data: dict[str, Any]) -> PromptResponse:
    responded_at = int(data.get("respondedAt") or 0)
    if "selectedOption" in data:
        return QuickPermissionResponse(
            selected_option=int(data["selectedOption"]),
            action=data.get("action") or PermissionAction.ALLOW.value,
            responded_at=responded_at,
        )
    return PermissionResponse(
        action=data.get("action") or PermissionAction.ALLOW.value, responded_at=responded_at
    )
