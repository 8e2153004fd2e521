"""File-based rendezvous between assistant hooks and the remote client.

Files live in PROMPTS_DIR:
    pending-<id>.json   written by a hook, read by the callback handler
    response-<id>.json  written by the callback handler, consumed by the hook

A response is consumed at most once: once the file parses, the waiting side
claims it with an atomic rename, so two waiters can never both see it. A
file that does not parse yet (a writer mid-write) is left for the next poll.
"""

import asyncio
import dataclasses
import json
import secrets
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Optional, Union

import aiofiles
import aiofiles.os
from loguru import logger

from remote_relay.config import config
from remote_relay.errors import PersistenceError

from .models import (
    TIMED_OUT,
    PendingPrompt,
    PromptResponse,
    TimedOut,
    now_ms,
    pending_from_dict,
    pending_to_dict,
    response_from_dict,
    response_to_dict,
)


def generate_prompt_id() -> str:
    """Generate an unpredictable 8-character hex prompt id."""
    return secrets.token_hex(4)


class PromptBridge:
    """Publishes pending prompts and hands answers back to their publisher."""

    def __init__(
        self,
        prompts_dir: Optional[str | Path] = None,
        expiry_seconds: Optional[int] = None,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        self.prompts_dir = Path(prompts_dir or config.PROMPTS_DIR).expanduser()
        self.expiry_seconds = expiry_seconds or config.timeouts.prompts.expiry
        self.clock_ms = clock_ms

    def pending_path(self, prompt_id: str) -> Path:
        return self.prompts_dir / f"pending-{prompt_id}.json"

    def response_path(self, prompt_id: str) -> Path:
        return self.prompts_dir / f"response-{prompt_id}.json"

    async def _ensure_dir(self) -> None:
        try:
            await aiofiles.os.makedirs(self.prompts_dir, exist_ok=True)
        except OSError as e:
            raise PersistenceError(str(self.prompts_dir), str(e)) from e

    async def _write_json(self, path: Path, data: dict[str, Any]) -> None:
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2))
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(str(path), str(e)) from e

    async def _read_json(self, path: Path) -> Optional[dict[str, Any]]:
        """Read a record, returning None when it is missing or unreadable."""
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Unreadable prompt record {path.name}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def _unlink(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove prompt record {path.name}: {e}")

    async def publish(self, prompt_id: str, prompt: PendingPrompt) -> PendingPrompt:
        """Write the pending record for prompt_id, stamping createdAt.

        Args:
            prompt_id: Id shared by the pending and response records
            prompt: The prompt to publish

        Returns:
            The prompt as written, with created_at set

        Raises:
            PersistenceError: the record could not be written
        """
        await self._ensure_dir()
        await self.clean_expired()
        stamped = dataclasses.replace(prompt, created_at=self.clock_ms())
        await self._write_json(self.pending_path(prompt_id), pending_to_dict(stamped))
        logger.debug(f"Published {stamped.type} prompt {prompt_id} for {stamped.workspace}")
        return stamped

    async def read_pending(self, prompt_id: str) -> Optional[PendingPrompt]:
        """Pending record for prompt_id, or None when it is missing or malformed."""
        data = await self._read_json(self.pending_path(prompt_id))
        if data is None:
            return None
        try:
            return pending_from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed pending prompt {prompt_id}: {e}")
            return None

    async def update_pending(self, prompt_id: str, **changes: Any) -> Optional[PendingPrompt]:
        """Replace fields on an existing pending record. No-op when it is gone."""
        existing = await self.read_pending(prompt_id)
        if existing is None:
            return None
        updated = dataclasses.replace(existing, **changes)
        await self._write_json(self.pending_path(prompt_id), pending_to_dict(updated))
        return updated

    async def supply_response(self, prompt_id: str, response: PromptResponse) -> PromptResponse:
        """Write the response record for prompt_id.

        Writing a response with no matching pending record is not an error;
        nobody will consume it and clean_expired() removes it later.

        Args:
            prompt_id: Prompt being answered
            response: The answer

        Returns:
            The response as written, with responded_at set

        Raises:
            PersistenceError: the record could not be written
        """
        await self._ensure_dir()
        stamped = dataclasses.replace(response, responded_at=self.clock_ms())
        await self._write_json(self.response_path(prompt_id), response_to_dict(stamped))
        logger.info(f"Wrote response for prompt {prompt_id}: action={stamped.action}")
        return stamped

    async def read_response(self, prompt_id: str) -> Optional[PromptResponse]:
        """Peek at a response without consuming it."""
        data = await self._read_json(self.response_path(prompt_id))
        if data is None:
            return None
        try:
            return response_from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed response for prompt {prompt_id}: {e}")
            return None

    def _parse_response(self, prompt_id: str, data: Optional[dict[str, Any]]) -> Optional[PromptResponse]:
        if data is None:
            return None
        try:
            return response_from_dict(data)
        except (TypeError, ValueError) as e:
            logger.debug(f"Malformed response for prompt {prompt_id}: {e}")
            return None

    async def _try_consume(self, prompt_id: str) -> Optional[PromptResponse]:
        response_path = self.response_path(prompt_id)
        # A response still being written does not parse yet; leave it for the next poll
        response = self._parse_response(prompt_id, await self._read_json(response_path))
        if response is None:
            return None

        claimed = response_path.with_name(f".{response_path.name}.{uuid.uuid4().hex[:8]}.claimed")
        try:
            await aiofiles.os.rename(response_path, claimed)
        except FileNotFoundError:
            # Another waiter claimed it first
            return None
        except OSError as e:
            logger.debug(f"Could not claim response {prompt_id}: {e}")
            return None

        # Prefer what was claimed in case the writer replaced the file between read and rename
        response = self._parse_response(prompt_id, await self._read_json(claimed)) or response
        await self._unlink(claimed)
        await self._unlink(self.pending_path(prompt_id))
        return response

    async def await_response(
        self,
        prompt_id: str,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> Union[PromptResponse, TimedOut]:
        """Poll until a response for prompt_id appears or the timeout passes.

        Args:
            prompt_id: Prompt to wait for
            poll_interval: Seconds between polls (default: PROMPT_POLL_INTERVAL)
            timeout: Seconds to wait in total (default: PROMPT_RESPONSE_TIMEOUT)

        Returns:
            The response, after both records are deleted. TIMED_OUT when the
            timeout passes; the pending record is then left in place and the
            caller decides whether to clean it up.
        """
        poll_interval = poll_interval or config.timeouts.prompts.poll_interval
        timeout = timeout if timeout is not None else config.timeouts.prompts.response_timeout

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            response = await self._try_consume(prompt_id)
            if response is not None:
                logger.info(f"Received response for prompt {prompt_id}: action={response.action}")
                return response

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(f"Timed out waiting for response to prompt {prompt_id}")
                return TIMED_OUT
            await asyncio.sleep(min(poll_interval, remaining))

    async def clean_prompt(self, prompt_id: str) -> None:
        """Remove both records for prompt_id."""
        await self._unlink(self.pending_path(prompt_id))
        await self._unlink(self.response_path(prompt_id))

    async def _record_files(self) -> list[str]:
        try:
            return await aiofiles.os.listdir(self.prompts_dir)
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning(f"Cannot list prompts directory {self.prompts_dir}: {e}")
            return []

    async def clean_expired(self) -> int:
        """Remove records whose modification time is older than the expiry."""
        now = time.time()
        removed = 0
        for name in await self._record_files():
            if not name.endswith(".json"):
                continue
            path = self.prompts_dir / name
            try:
                stat = await aiofiles.os.stat(path)
            except OSError:
                continue
            if now - stat.st_mtime > self.expiry_seconds:
                await self._unlink(path)
                removed += 1
        if removed:
            logger.debug(f"Removed {removed} expired prompt record(s)")
        return removed

    async def list_pending(self) -> list[tuple[str, PendingPrompt]]:
        """All readable pending records, oldest first."""
        prompts = []
        for name in await self._record_files():
            if not (name.startswith("pending-") and name.endswith(".json")):
                continue
            prompt_id = name[len("pending-") : -len(".json")]
            prompt = await self.read_pending(prompt_id)
            if prompt is not None:
                prompts.append((prompt_id, prompt))
        prompts.sort(key=lambda item: item[1].created_at)
        return prompts

    async def has_pending_for_workspace(self, workspace: str) -> bool:
        """True when a fresh, unanswered prompt exists for workspace."""
        expiry_ms = self.expiry_seconds * 1000
        now = self.clock_ms()
        for prompt_id, prompt in await self.list_pending():
            if prompt.workspace != workspace or now - prompt.created_at >= expiry_ms:
                continue
            if not await aiofiles.os.path.exists(self.response_path(prompt_id)):
                return True
        return False
