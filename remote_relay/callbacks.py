"""Parser for colon-delimited callback strings sent by the remote client.

Format: ``<tag>:<field>[:<field>...]``. Malformed input never raises; the
parser returns None and callers ignore the callback.
"""

import re
from dataclasses import asdict, dataclass
from typing import Optional, Union

_INT_RE = re.compile(r"-?[0-9]+")


@dataclass(frozen=True)
class NewProject:
    project_name: str

    tag = "new"

    def to_wire(self) -> str:
        return f"{self.tag}:{self.project_name}"


@dataclass(frozen=True)
class PermissionCallback:
    prompt_id: str
    action: str

    tag = "perm"

    def to_wire(self) -> str:
        return f"{self.tag}:{self.prompt_id}:{self.action}"


@dataclass(frozen=True)
class OptionCallback:
    prompt_id: str
    option_index: int

    tag = "opt"

    def to_wire(self) -> str:
        return f"{self.tag}:{self.prompt_id}:{self.option_index}"


@dataclass(frozen=True)
class OptionSubmitCallback:
    prompt_id: str

    tag = "opt-submit"

    def to_wire(self) -> str:
        return f"{self.tag}:{self.prompt_id}"


@dataclass(frozen=True)
class QuickPermissionCallback:
    prompt_id: str
    option_index: int

    tag = "qperm"

    def to_wire(self) -> str:
        return f"{self.tag}:{self.prompt_id}:{self.option_index}"


@dataclass(frozen=True)
class ResumeProject:
    project_name: str

    tag = "rp"

    def to_wire(self) -> str:
        return f"{self.tag}:{self.project_name}"


@dataclass(frozen=True)
class ResumeSession:
    project_name: str
    session_idx: int

    tag = "rs"

    def to_wire(self) -> str:
        return f"{self.tag}:{self.project_name}:{self.session_idx}"


@dataclass(frozen=True)
class ResumeConfirm:
    project_name: str
    session_idx: int

    tag = "rc"

    def to_wire(self) -> str:
        return f"{self.tag}:{self.project_name}:{self.session_idx}"


ParsedCallback = Union[
    NewProject,
    PermissionCallback,
    OptionCallback,
    OptionSubmitCallback,
    QuickPermissionCallback,
    ResumeProject,
    ResumeSession,
    ResumeConfirm,
]

# Callbacks that carry a prompt id and are answered through the prompt bridge
PROMPT_CALLBACKS = (
    PermissionCallback,
    OptionCallback,
    OptionSubmitCallback,
    QuickPermissionCallback,
)


def _parse_int(value: str) -> Optional[int]:
    """Parse a strict base-10 integer, returning None for anything else."""
    if not _INT_RE.fullmatch(value):
        return None
    return int(value)


def _parse_named_index(parts: list[str]) -> Optional[tuple[str, int]]:
    """Split ``tag:name...:idx`` into (name, idx); name may contain colons."""
    if len(parts) < 3:
        return None
    idx = _parse_int(parts[-1])
    name = ":".join(parts[1:-1])
    if idx is None or not name:
        return None
    return name, idx


def parse_callback_data(data: Optional[str]) -> Optional[ParsedCallback]:
    """Parse a callback string into a typed callback.

    Returns None for empty input, unknown tags, wrong field counts, empty
    required fields, and non-numeric indexes.
    """
    if not data:
        return None

    parts = data.split(":")
    tag = parts[0]

    # Project names may themselves contain colons, so rejoin the remainder
    if tag in (NewProject.tag, ResumeProject.tag):
        name = ":".join(parts[1:])
        if not name:
            return None
        return NewProject(name) if tag == NewProject.tag else ResumeProject(name)

    if tag in (ResumeSession.tag, ResumeConfirm.tag):
        named = _parse_named_index(parts)
        if named is None:
            return None
        cls = ResumeSession if tag == ResumeSession.tag else ResumeConfirm
        return cls(project_name=named[0], session_idx=named[1])

    if tag == OptionSubmitCallback.tag:
        if len(parts) != 2 or not parts[1]:
            return None
        return OptionSubmitCallback(prompt_id=parts[1])

    if tag not in (PermissionCallback.tag, OptionCallback.tag, QuickPermissionCallback.tag):
        return None

    if len(parts) != 3:
        return None

    prompt_id, value = parts[1], parts[2]
    if not prompt_id:
        return None

    # The action is not validated here; the dispatcher rejects unknown ones
    if tag == PermissionCallback.tag:
        return PermissionCallback(prompt_id=prompt_id, action=value)

    option_index = _parse_int(value)
    if option_index is None:
        return None
    if tag == OptionCallback.tag:
        return OptionCallback(prompt_id=prompt_id, option_index=option_index)
    return QuickPermissionCallback(prompt_id=prompt_id, option_index=option_index)


def callback_to_dict(callback: ParsedCallback) -> dict:
    """Return the camelCase shape used by the remote client's UI layer."""
    data = asdict(callback)
    result: dict = {"type": callback.tag}
    for key, value in data.items():
        head, *rest = key.split("_")
        result[head + "".join(word.title() for word in rest)] = value
    return result
