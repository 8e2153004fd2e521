"""Routing of remote button presses (callback data) to their effects.

Permission answers go through the prompt bridge; question answers become
keystrokes in the assistant's terminal; project actions are handed to an
injected handler.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from loguru import logger

from remote_relay.callbacks import (
    NewProject,
    OptionCallback,
    OptionSubmitCallback,
    ParsedCallback,
    PermissionCallback,
    QuickPermissionCallback,
    ResumeConfirm,
    ResumeProject,
    ResumeSession,
    parse_callback_data,
)
from remote_relay.config import InjectionTimeouts, config
from remote_relay.errors import RelayError
from remote_relay.hooks.notify import NotificationButton, option_buttons
from remote_relay.prompts import (
    PendingQuestion,
    PermissionAction,
    PermissionResponse,
    PromptBridge,
    QuickPermissionResponse,
)
from remote_relay.terminal import InjectorSet, Key

PERMISSION_LABELS = {
    PermissionAction.ALLOW.value: "Allowed",
    PermissionAction.ALWAYS.value: "Always Allowed",
    PermissionAction.DENY.value: "Denied",
}


@dataclass
class DispatchOutcome:
    """Result shown to the remote user after a button press."""

    ok: bool
    message: str
    # Updated buttons when the original message should be re-rendered
    buttons: Optional[list[list[NotificationButton]]] = None
    selected: list[str] = field(default_factory=list)
    # Workspace a reply to the outcome message should be routed to
    workspace: Optional[str] = None


ProjectHandler = Callable[[ParsedCallback], Awaitable[DispatchOutcome]]


def option_keys(option_index: int) -> list[str]:
    """Keys that pick a 1-based option in a list whose first item is highlighted."""
    return [Key.DOWN] * (option_index - 1) + [Key.ENTER]


def submit_keys(selected: list[bool], option_count: int) -> list[str]:
    """Keys that tick the selected options of a multi-select list and submit it.

    The list ends with an auto-added "Other" entry, then Submit.
    """
    keys = []
    for i in range(option_count):
        if i < len(selected) and selected[i]:
            keys.append(Key.SPACE)
        keys.append(Key.DOWN)
    keys.append(Key.DOWN)
    keys.append(Key.ENTER)
    return keys


class CallbackDispatcher:
    def __init__(
        self,
        bridge: PromptBridge,
        injectors: InjectorSet,
        project_handler: Optional[ProjectHandler] = None,
        timeouts: Optional[InjectionTimeouts] = None,
    ) -> None:
        self.bridge = bridge
        self.injectors = injectors
        self.project_handler = project_handler
        self.timeouts = timeouts or config.timeouts.injection
        self._background: set[asyncio.Task] = set()

    async def dispatch(self, data: str) -> DispatchOutcome:
        logger.info(f"Callback: {data}")
        parsed = parse_callback_data(data)
        if parsed is None:
            return DispatchOutcome(False, "Invalid callback")

        if isinstance(parsed, PermissionCallback):
            return await self._permission(parsed)
        if isinstance(parsed, OptionCallback):
            return await self._option(parsed)
        if isinstance(parsed, OptionSubmitCallback):
            return await self._option_submit(parsed)
        if isinstance(parsed, QuickPermissionCallback):
            return await self._quick_permission(parsed)
        if isinstance(parsed, (NewProject, ResumeProject, ResumeSession, ResumeConfirm)):
            if self.project_handler is None:
                return DispatchOutcome(False, "Project actions are not available")
            return await self.project_handler(parsed)
        return DispatchOutcome(False, "Invalid callback")

    async def _permission(self, callback: PermissionCallback) -> DispatchOutcome:
        if await self.bridge.read_pending(callback.prompt_id) is None:
            return DispatchOutcome(False, "Session not found")

        try:
            response = PermissionResponse(callback.action)
        except ValueError:
            return DispatchOutcome(False, f"Unknown action: {callback.action}")

        try:
            await self.bridge.supply_response(callback.prompt_id, response)
        except RelayError as e:
            logger.error(f"Failed to write permission response: {e}")
            return DispatchOutcome(False, "Failed to save response")
        return DispatchOutcome(True, PERMISSION_LABELS[callback.action])

    async def _press_keys(self, session_name: str, keys: list[str], is_last: bool) -> None:
        injector = await self.injectors.for_session(session_name)
        await injector.send_key_sequence(session_name, keys)
        if is_last:
            # Multi-question flows end with a review step that needs its own Enter
            await asyncio.sleep(self.timeouts.last_question_delay)
            await injector.send_key_sequence(session_name, [Key.ENTER])

    async def _option(self, callback: OptionCallback) -> DispatchOutcome:
        pending = await self.bridge.read_pending(callback.prompt_id)
        if not isinstance(pending, PendingQuestion) or not pending.terminal_session_name:
            return DispatchOutcome(False, "Session not found")
        if not pending.option_texts or not 1 <= callback.option_index <= len(pending.option_texts):
            return DispatchOutcome(False, "Invalid option")

        label = pending.option_label(callback.option_index)
        idx = callback.option_index - 1

        if pending.multi_select:
            selected = list(pending.selected_options or [False] * len(pending.option_texts))
            selected.extend([False] * (len(pending.option_texts) - len(selected)))
            selected[idx] = not selected[idx]
            updated = await self.bridge.update_pending(callback.prompt_id, selected_options=selected)
            if updated is None:
                return DispatchOutcome(False, "Session not found")
            mark = "[x]" if selected[idx] else "[ ]"
            return DispatchOutcome(True, f"{mark} {label}", buttons=option_buttons(callback.prompt_id, updated))

        try:
            await self._press_keys(
                pending.terminal_session_name, option_keys(callback.option_index), pending.is_last
            )
        except RelayError as e:
            logger.error(f"Failed to inject keystroke: {e}")
            return DispatchOutcome(False, "Failed to send selection")

        await self.bridge.clean_prompt(callback.prompt_id)
        return DispatchOutcome(True, f"Selected: {label}", selected=[label])

    async def _option_submit(self, callback: OptionSubmitCallback) -> DispatchOutcome:
        pending = await self.bridge.read_pending(callback.prompt_id)
        if not isinstance(pending, PendingQuestion) or not pending.terminal_session_name:
            return DispatchOutcome(False, "Session not found")

        selected = pending.selected_options or []
        labels = [label for i, label in enumerate(pending.option_texts) if i < len(selected) and selected[i]]
        if not labels:
            return DispatchOutcome(False, "No options selected")

        try:
            await self._press_keys(
                pending.terminal_session_name,
                submit_keys(selected, len(pending.option_texts)),
                pending.is_last,
            )
        except RelayError as e:
            logger.error(f"Failed to inject keystrokes: {e}")
            return DispatchOutcome(False, "Failed to send selections")

        await self.bridge.clean_prompt(callback.prompt_id)
        return DispatchOutcome(True, f"Submitted {len(labels)} options", selected=labels)

    async def _quick_permission(self, callback: QuickPermissionCallback) -> DispatchOutcome:
        pending = await self.bridge.read_pending(callback.prompt_id)
        if pending is None:
            return DispatchOutcome(False, "Session not found")
        if callback.option_index < 1:
            return DispatchOutcome(False, "Invalid option")

        label = (
            pending.option_label(callback.option_index)
            if isinstance(pending, PendingQuestion)
            else f"Option {callback.option_index}"
        )

        try:
            await self.bridge.supply_response(
                callback.prompt_id, QuickPermissionResponse(selected_option=callback.option_index)
            )
        except RelayError as e:
            logger.error(f"Failed to write qperm response: {e}")
            return DispatchOutcome(False, "Failed to save response")

        if pending.terminal_session_name:
            task = asyncio.create_task(
                self._answer_after_render(pending.terminal_session_name, callback.option_index)
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        return DispatchOutcome(True, f"Selected: {label}", selected=[label])

    async def _answer_after_render(self, session_name: str, option_index: int) -> None:
        # The question UI only appears once the permission hook has returned
        await asyncio.sleep(self.timeouts.question_render_delay)
        try:
            injector = await self.injectors.for_session(session_name)
            await injector.send_key_sequence(session_name, option_keys(option_index))
            logger.info(f"Injected question answer into {session_name}: option {option_index}")
        except RelayError as e:
            logger.error(f"Failed to inject question answer: {e}")

    async def wait_background(self) -> None:
        """Wait for scheduled keystroke injections to finish."""
        if self._background:
            await asyncio.gather(*list(self._background))
