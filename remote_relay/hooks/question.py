"""PreToolUse hook for AskUserQuestion.

Non-blocking: publishes one pending question per item and notifies the
remote client, then returns without any stdout so the assistant still shows
its own question UI. The answer arrives later as keystrokes.
"""

import asyncio
from typing import Optional

from loguru import logger

from remote_relay.config import config
from remote_relay.prompts import (
    PendingPrompt,
    PendingQuestion,
    PendingQuestionFreeText,
    PromptBridge,
    generate_prompt_id,
)
from remote_relay.sessions import WorkspaceRouting, workspace_name

from .notify import Notifier, deliver, log_notifier, question_notification
from .payload import HookPayload, parse_questions


class QuestionHook:
    def __init__(
        self,
        bridge: Optional[PromptBridge] = None,
        notifier: Notifier = log_notifier,
        terminal_session: Optional[str] = None,
        routing: Optional[WorkspaceRouting] = None,
        delay: Optional[float] = None,
    ) -> None:
        self.bridge = bridge or PromptBridge()
        self.notifier = notifier
        self.terminal_session = terminal_session
        self.routing = routing
        # Lets the permission notification for the same tool call arrive first
        self.delay = delay if delay is not None else config.timeouts.prompts.question_notify_delay

    async def handle(self, payload: HookPayload) -> list[str]:
        """Publish the questions in payload. Returns the prompt ids in order."""
        if self.delay:
            await asyncio.sleep(self.delay)

        questions = parse_questions(payload.tool_input)
        if not questions:
            return []

        workspace = workspace_name(payload.cwd) or "unknown"
        prompt_ids = []
        for i, item in enumerate(questions):
            prompt_id = generate_prompt_id()
            prompt: PendingPrompt
            if item.options:
                prompt = PendingQuestion(
                    workspace=workspace,
                    question_text=item.question,
                    option_texts=[option.label for option in item.options],
                    multi_select=item.multi_select,
                    selected_options=[False] * len(item.options) if item.multi_select else None,
                    is_last=i == len(questions) - 1,
                    terminal_session_name=self.terminal_session,
                )
            else:
                prompt = PendingQuestionFreeText(
                    workspace=workspace,
                    question_text=item.question,
                    terminal_session_name=self.terminal_session,
                )

            prompt = await self.bridge.publish(prompt_id, prompt)
            prompt_ids.append(prompt_id)

            descriptions = [option.description or "" for option in item.options]
            try:
                notification = question_notification(prompt_id, prompt, descriptions)
                await deliver(self.notifier, notification, self.routing)
            except Exception as e:
                logger.error(f"[{prompt_id}] Question notification failed: {e}")

        logger.info(f"Published {len(prompt_ids)} question(s) for {workspace}")
        return prompt_ids
