"""Overlay bus events.

``type`` discriminates the union; ``message`` carries an open-ended
JSON object so the control panel can add event kinds without a server
release.
"""

import time
import uuid
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def now_ms() -> int:
    return int(time.time() * 1000)


def _event_id() -> str:
    return uuid.uuid4().hex


class _BaseEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_event_id)
    ts: int = Field(default_factory=now_ms)


class TaskEvent(_BaseEvent):
    type: Literal["task"] = "task"
    line: str
    mode: str
    task_type: str = Field(alias="taskType")
    stream_kind: str = Field(alias="streamKind")
    name: str | None = None


class AudienceEvent(_BaseEvent):
    type: Literal["audience"] = "audience"
    audience: str = "all"


class MessageEvent(_BaseEvent):
    type: Literal["message"] = "message"
    payload: dict[str, Any] = Field(default_factory=dict)


OverlayEvent = Annotated[TaskEvent | AudienceEvent | MessageEvent, Field(discriminator="type")]

_event_adapter = TypeAdapter(OverlayEvent)


def dump_event(event: TaskEvent | AudienceEvent | MessageEvent) -> str:
    """Wire/storage JSON with camelCase keys and no null fields"""
    return event.model_dump_json(by_alias=True, exclude_none=True)


def load_event(raw: str | bytes) -> TaskEvent | AudienceEvent | MessageEvent:
    return _event_adapter.validate_json(raw)
