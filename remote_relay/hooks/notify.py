"""Notifications handed to the remote client for each published prompt.

The transport that delivers them is pluggable: a hook is given an async
notifier callable and never talks to a messaging service itself.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from remote_relay.callbacks import (
    OptionCallback,
    OptionSubmitCallback,
    ParsedCallback,
    PermissionCallback,
)
from remote_relay.errors import RelayError
from remote_relay.prompts import PendingPrompt, PendingQuestion
from remote_relay.sessions import WorkspaceRouting
from remote_relay.sessions.routing import MessageId

MAX_DESCRIPTION = 2500
MAX_COMMAND = 500
MAX_DIFF_LINES = 12

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]|\x1b\][^\x07]*\x07")
SPINNER_LINE = re.compile(r"^[⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏]")
BUSY_LINE = re.compile(r"^(Clauding|Working|Waiting|Processing)", re.IGNORECASE)
STATUS_BAR_LINE = re.compile(r"^.+\|.+\|.+\|.+\$")


@dataclass
class NotificationButton:
    label: str
    callback: ParsedCallback

    @property
    def data(self) -> str:
        return self.callback.to_wire()


@dataclass
class Notification:
    prompt_id: str
    prompt: PendingPrompt
    text: str
    buttons: list[list[NotificationButton]] = field(default_factory=list)


# A notifier may return the transport's message id so replies can be routed
Notifier = Callable[[Notification], Awaitable[Optional[MessageId]]]


async def log_notifier(notification: Notification) -> None:
    """Default notifier: record the notification and leave delivery to the client."""
    wires = [button.data for row in notification.buttons for button in row]
    logger.info(f"Prompt {notification.prompt_id} ready ({notification.prompt.type}): {wires}")


async def deliver(
    notifier: Notifier, notification: Notification, routing: Optional[WorkspaceRouting] = None
) -> None:
    """Send a notification and remember its workspace for reply routing.

    Notifier errors propagate. A failure to record the route is only logged.
    """
    message_id = await notifier(notification)
    if message_id is None or routing is None:
        return
    try:
        await routing.track_message(message_id, notification.prompt.workspace, notification.prompt.type)
    except RelayError as e:
        logger.warning(f"[{notification.prompt_id}] Could not record reply route: {e}")


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def describe_tool(tool_name: str, tool_input: dict[str, Any]) -> str:
    """Short plain-text summary of what a tool call is about to do."""
    if tool_name == "Bash" and tool_input.get("command"):
        return f"Command: {truncate(str(tool_input['command']), MAX_COMMAND)}"

    file_path = tool_input.get("file_path")
    if tool_name == "Edit" and file_path:
        old, new = tool_input.get("old_string"), tool_input.get("new_string")
        if not (old and new):
            return f"File: {file_path}"
        lines = [f"File: {file_path}"]
        for prefix, text in (("-", old), ("+", new)):
            split = str(text).split("\n")
            lines.extend(f"{prefix} {line}" for line in split[:MAX_DIFF_LINES])
            if len(split) > MAX_DIFF_LINES:
                lines.append("  ...")
        return "\n".join(lines)
    if tool_name in ("Write", "Read") and file_path:
        return f"File: {file_path}"

    if tool_input:
        key = next(iter(tool_input))
        return f"{key}: {str(tool_input[key])[:200]}"
    return ""


def clean_plan_output(raw: str) -> str:
    """Strip escapes, spinners and status bars from a captured plan screen."""
    lines = [ANSI_ESCAPE.sub("", line) for line in raw.split("\n")]
    kept = [
        line
        for line in lines
        if not line.strip()
        or not (
            SPINNER_LINE.match(line.strip())
            or BUSY_LINE.match(line.strip())
            or STATUS_BAR_LINE.match(line.strip())
        )
    ]
    return "\n".join(kept).strip()


def permission_notification(prompt_id: str, prompt: PendingPrompt, plan_content: str = "") -> Notification:
    if prompt.type == "plan":
        text = f"Plan Approval - {prompt.workspace}"
        if plan_content:
            text += "\n\n" + truncate(plan_content, MAX_DESCRIPTION)
        buttons = [
            [
                NotificationButton("Approve", PermissionCallback(prompt_id, "allow")),
                NotificationButton("Reject", PermissionCallback(prompt_id, "deny")),
            ]
        ]
        return Notification(prompt_id, prompt, text, buttons)

    text = f"Permission - {prompt.workspace}\n\nTool: {prompt.tool_name}"
    description = describe_tool(prompt.tool_name, prompt.tool_input)
    if description:
        text += "\n" + truncate(description, MAX_DESCRIPTION)
    buttons = [
        [
            NotificationButton("Allow", PermissionCallback(prompt_id, "allow")),
            NotificationButton("Deny", PermissionCallback(prompt_id, "deny")),
            NotificationButton("Always", PermissionCallback(prompt_id, "always")),
        ]
    ]
    return Notification(prompt_id, prompt, text, buttons)


def option_buttons(prompt_id: str, question: PendingQuestion) -> list[list[NotificationButton]]:
    """Numbered option buttons, two per row, plus Submit for multi-select."""
    selected = question.selected_options or []
    buttons = []
    for idx, label in enumerate(question.option_texts):
        prefix = ""
        if question.multi_select:
            prefix = "[x] " if idx < len(selected) and selected[idx] else "[ ] "
        buttons.append(NotificationButton(f"{prefix}{idx + 1}. {label}", OptionCallback(prompt_id, idx + 1)))

    rows = [buttons[i : i + 2] for i in range(0, len(buttons), 2)]
    if question.multi_select:
        rows.append([NotificationButton("Submit", OptionSubmitCallback(prompt_id))])
    return rows


def question_notification(
    prompt_id: str, prompt: PendingPrompt, descriptions: list[str] | None = None
) -> Notification:
    text = f"Question - {prompt.workspace}\n\n{prompt.question_text}"
    if not isinstance(prompt, PendingQuestion):
        return Notification(prompt_id, prompt, text + "\n\nReply with your answer")

    descriptions = descriptions or []
    lines = []
    for idx, label in enumerate(prompt.option_texts):
        line = f"{idx + 1}. {label}"
        if idx < len(descriptions) and descriptions[idx]:
            line += f" - {descriptions[idx]}"
        lines.append(line)
    text += "\n\n" + "\n".join(lines)
    return Notification(prompt_id, prompt, text, option_buttons(prompt_id, prompt))
