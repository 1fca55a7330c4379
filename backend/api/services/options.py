"""Overlay generation options and their lenient normalization.

Unknown or legacy values (older overlay builds send ``challenge``,
``just_chat``, ``gaming``...) map onto the current option set instead of
being rejected.
"""

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class Mode(StrEnum):
    FUNNY = "funny"
    MOTIVATOR = "motivator"
    SERIOUS = "serious"
    CHILL = "chill"
    URBAN = "urban"
    EDGY = "edgy"


class TaskType(StrEnum):
    TASK = "task"
    QUESTION = "question"
    BANTER = "banter"


class StreamKind(StrEnum):
    JUST_CHATTING = "just_chatting"
    IRL = "irl"
    OTHER = "other"


class Lang(StrEnum):
    EN = "en"
    RU = "ru"
    ES = "es"


DEFAULT_MODE = Mode.MOTIVATOR
DEFAULT_TASK_TYPE = TaskType.TASK
DEFAULT_STREAM_KIND = StreamKind.OTHER
DEFAULT_LANG = Lang.EN

MIN_SECONDS = 5
MAX_SECONDS = 60

_MODE_ALIASES = {"street": Mode.URBAN}
_TASK_TYPE_ALIASES = {
    "challenge": TaskType.TASK,
    "joke": TaskType.BANTER,
    "just_talk": TaskType.BANTER,
}
_STREAM_KIND_ALIASES = {"just_chat": StreamKind.JUST_CHATTING}


def _clean(value: Any) -> str:
    return str(value or "").strip().lower()


def normalize_mode(value: Any) -> Mode:
    v = _clean(value)
    if v in _MODE_ALIASES:
        return _MODE_ALIASES[v]
    try:
        return Mode(v)
    except ValueError:
        return DEFAULT_MODE


def normalize_task_type(value: Any) -> TaskType:
    v = _clean(value)
    if v in _TASK_TYPE_ALIASES:
        return _TASK_TYPE_ALIASES[v]
    try:
        return TaskType(v)
    except ValueError:
        return DEFAULT_TASK_TYPE


def normalize_stream_kind(value: Any) -> StreamKind:
    # gaming / music / cooking and anything unknown collapse to "other"
    v = _clean(value)
    if v in _STREAM_KIND_ALIASES:
        return _STREAM_KIND_ALIASES[v]
    try:
        return StreamKind(v)
    except ValueError:
        return DEFAULT_STREAM_KIND


def normalize_lang(value: Any) -> Lang:
    try:
        return Lang(_clean(value))
    except ValueError:
        return DEFAULT_LANG


def clamp_seconds(value: Any) -> int | None:
    """Auto-refresh interval in seconds, clamped to 5..60; None if not a number"""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value):
        return None
    return max(MIN_SECONDS, min(MAX_SECONDS, int(value)))


@dataclass(frozen=True)
class TaskOptions:
    mode: Mode = DEFAULT_MODE
    task_type: TaskType = DEFAULT_TASK_TYPE
    stream_kind: StreamKind = DEFAULT_STREAM_KIND
    lang: Lang = DEFAULT_LANG

    @classmethod
    def from_raw(
        cls,
        mode: Any = None,
        task_type: Any = None,
        stream_kind: Any = None,
        lang: Any = None,
    ) -> "TaskOptions":
        return cls(
            mode=normalize_mode(mode),
            task_type=normalize_task_type(task_type),
            stream_kind=normalize_stream_kind(stream_kind),
            lang=normalize_lang(lang),
        )

    def as_dict(self) -> dict[str, str]:
        return {
            "mode": self.mode.value,
            "taskType": self.task_type.value,
            "streamKind": self.stream_kind.value,
            "lang": self.lang.value,
        }
