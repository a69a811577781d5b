"""Script document and conversation state models.

A Script is the immutable, versioned document that drives a conversation.
It is built only through parse_script(), which validates the document
structure (pydantic) and the cross-references between events before the
engine is allowed to see it. Pydantic is used for validation and
serialisation at every data boundary.

Enum-typed fields (message type, sender, bubble style, animation, text
effect) are parsed through explicit lookup tables. Unknown values from older
script versions map to a documented default instead of failing:

    MessageType   → text
    Sender        → bot
    BubbleStyle   → normal
    AnimationType → slide_in
    TextEffect    → none
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

Variables = dict[str, Any]

_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DAY_KEY_RE = re.compile(r"^day_(\d+)$")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class MessageType(str, Enum):
    TEXT = "text"
    OPTIONS = "options"
    INPUT = "input"
    SEQUENCE = "sequence"
    CONDITIONAL = "conditional"
    ACHIEVEMENT = "achievement"
    STREAK = "streak"
    ANIMATION = "animation"
    DELAY = "delay"
    BRANCH = "branch"

    @classmethod
    def from_script(cls, value: Any) -> MessageType:
        return _lookup(_MESSAGE_TYPES, value, cls.TEXT)


class Sender(str, Enum):
    BOT = "bot"
    USER = "user"
    SYSTEM = "system"

    @classmethod
    def from_script(cls, value: Any) -> Sender:
        return _lookup(_SENDERS, value, cls.BOT)


class BubbleStyle(str, Enum):
    NORMAL = "normal"
    GLITCH = "glitch"
    TYPEWRITER = "typewriter"
    SHAKE = "shake"
    FADE = "fade"
    MATRIX = "matrix"
    ERROR = "error"

    @classmethod
    def from_script(cls, value: Any) -> BubbleStyle:
        return _lookup(_BUBBLE_STYLES, value, cls.NORMAL)


class AnimationType(str, Enum):
    NONE = "none"
    SLIDE_IN = "slide_in"
    FADE_IN = "fade_in"
    BOUNCE = "bounce"
    GLITCH = "glitch"
    TYPEWRITER = "typewriter"
    DROP = "drop"

    @classmethod
    def from_script(cls, value: Any) -> AnimationType:
        return _lookup(_ANIMATIONS, value, cls.SLIDE_IN)


class TextEffect(str, Enum):
    NONE = "none"
    BOLD = "bold"
    ITALIC = "italic"
    STRIKETHROUGH = "strikethrough"
    RAINBOW = "rainbow"
    PULSING = "pulsing"
    SHAKE = "shake"

    @classmethod
    def from_script(cls, value: Any) -> TextEffect:
        return _lookup(_TEXT_EFFECTS, value, cls.NONE)


# Keys are lowercased before lookup, so camelCase spellings from older
# documents appear here in lowercase.
_MESSAGE_TYPES: dict[str, MessageType] = {m.value: m for m in MessageType}

_SENDERS: dict[str, Sender] = {
    "bot": Sender.BOT,
    "coach": Sender.BOT,
    "tristopher": Sender.BOT,
    "user": Sender.USER,
    "system": Sender.SYSTEM,
}

_BUBBLE_STYLES: dict[str, BubbleStyle] = {s.value: s for s in BubbleStyle}

_ANIMATIONS: dict[str, AnimationType] = {
    "none": AnimationType.NONE,
    "slide_in": AnimationType.SLIDE_IN,
    "slidein": AnimationType.SLIDE_IN,
    "fade_in": AnimationType.FADE_IN,
    "fadein": AnimationType.FADE_IN,
    "bounce": AnimationType.BOUNCE,
    "glitch": AnimationType.GLITCH,
    "typewriter": AnimationType.TYPEWRITER,
    "drop": AnimationType.DROP,
}

_TEXT_EFFECTS: dict[str, TextEffect] = {e.value: e for e in TextEffect}


def _lookup(table: dict[str, Any], value: Any, default: Any) -> Any:
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str):
        return default
    return table.get(value.strip().lower(), default)


# ---------------------------------------------------------------------------
# Script document
# ---------------------------------------------------------------------------

class _ScriptModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ScriptMetadata(_ScriptModel):
    author: str = ""
    created_at: str | None = None
    description: str = ""
    supported_languages: list[str] = Field(default_factory=lambda: ["en"])
    is_active: bool = True


class InputConfig(_ScriptModel):
    hint: str = ""
    keyboard_type: str = Field("text", alias="keyboardType")
    max_length: int | None = Field(None, alias="maxLength")
    validation_regex: str | None = Field(None, alias="validationRegex")
    error_message: str = Field("", alias="errorMessage")
    store_as: str | None = Field(None, alias="storeAs")


class MessageOption(_ScriptModel):
    id: str
    text: str = ""
    content_key: str | None = None
    next_event: str | None = Field(None, alias="nextEventId")
    set_variables: Variables | None = Field(None, alias="setVariables")
    achievement_id: str | None = Field(None, alias="achievementId")
    enabled: bool = True
    disabled_reason: str | None = Field(None, alias="disabledReason")


class ScriptMessage(_ScriptModel):
    """One authored message. Text comes from `template`, `content_key` or `content`."""

    type: MessageType = MessageType.TEXT
    sender: Sender = Sender.BOT
    content: str | None = None
    content_key: str | None = Field(None, alias="contentKey")
    template: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    delay: int = Field(0, ge=0)  # ms before display
    options: list[MessageOption] = Field(default_factory=list)
    input_config: InputConfig | None = Field(None, alias="inputConfig")

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> MessageType:
        return MessageType.from_script(value)

    @field_validator("sender", mode="before")
    @classmethod
    def _parse_sender(cls, value: Any) -> Sender:
        return Sender.from_script(value)

    @property
    def requires_response(self) -> bool:
        return self.type in (MessageType.OPTIONS, MessageType.INPUT) or bool(self.options)


class EventTrigger(_ScriptModel):
    type: str = "time_window"
    start: str | None = None
    end: str | None = None
    conditions: Variables = Field(default_factory=dict)

    @field_validator("start", "end")
    @classmethod
    def _check_clock(cls, value: str | None) -> str | None:
        if value is not None and not _CLOCK_RE.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value


class EventResponse(_ScriptModel):
    next_event: str | None = Field(None, alias="nextEventId")
    set_variables: Variables | None = Field(None, alias="setVariables")
    achievement_id: str | None = Field(None, alias="achievementId")


class EventVariant(_ScriptModel):
    id: str
    weight: float = Field(1.0, ge=0)
    conditions: Variables = Field(default_factory=dict)
    messages: list[ScriptMessage] = Field(default_factory=list)
    set_variables: Variables | None = Field(None, alias="setVariables")


class DailyEvent(_ScriptModel):
    id: str
    trigger: EventTrigger = Field(default_factory=EventTrigger)
    variants: list[EventVariant] = Field(default_factory=list)
    responses: dict[str, EventResponse] = Field(default_factory=dict)
    priority: int = 0


class PlotEvent(_ScriptModel):
    id: str
    messages: list[ScriptMessage] = Field(default_factory=list)
    conditions: Variables = Field(default_factory=dict)
    set_variables: Variables | None = Field(None, alias="setVariables")


class PlotDay(_ScriptModel):
    events: list[PlotEvent] = Field(default_factory=list)
    conditions: Variables = Field(default_factory=dict)


class MessageTemplate(_ScriptModel):
    text: str
    variables: list[str] = Field(default_factory=list)

    def apply(self, values: Variables) -> str:
        """Fill the declared variables; every other token is left for the template engine."""
        text = self.text
        for name in self.variables:
            value = values.get(name)
            text = text.replace("{{" + name + "}}", "" if value is None else str(value))
        return text


class Script(_ScriptModel):
    id: str
    version: str
    metadata: ScriptMetadata = Field(default_factory=ScriptMetadata)
    global_variables: Variables = Field(default_factory=dict)
    daily_events: list[DailyEvent] = Field(default_factory=list)
    plot_timeline: dict[str, PlotDay] = Field(default_factory=dict)
    message_templates: dict[str, MessageTemplate] = Field(default_factory=dict)

    @field_validator("plot_timeline")
    @classmethod
    def _check_day_keys(cls, value: dict[str, PlotDay]) -> dict[str, PlotDay]:
        for key in value:
            match = _DAY_KEY_RE.match(key)
            if not match or int(match.group(1)) < 1:
                raise ValueError(f"plot day key must look like day_<n> with n >= 1, got {key!r}")
        return value

    def plot_day(self, day: int) -> PlotDay | None:
        return self.plot_timeline.get(f"day_{day}")

    def find_daily_event(self, event_id: str) -> DailyEvent | None:
        for event in self.daily_events:
            if event.id == event_id:
                return event
        return None

    def find_plot_event(self, event_id: str) -> PlotEvent | None:
        for day in self.plot_timeline.values():
            for event in day.events:
                if event.id == event_id:
                    return event
        return None

    def find_event(self, event_id: str) -> DailyEvent | PlotEvent | None:
        return self.find_daily_event(event_id) or self.find_plot_event(event_id)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_script(document: dict[str, Any] | str | bytes) -> Script:
    """Build a Script from a decoded or raw JSON document.

    Raises ScriptValidationError for malformed documents and for broken
    cross-references (duplicate ids, dangling or self-referencing branches).
    """
    try:
        if isinstance(document, (str, bytes)):
            script = Script.model_validate_json(document)
        else:
            script = Script.model_validate(document)
    except ValidationError as e:
        raise ScriptValidationError(f"Invalid script document: {e}") from e
    _check_structure(script)
    return script


def _check_structure(script: Script) -> None:
    events: list[DailyEvent | PlotEvent] = list(script.daily_events)
    for day in script.plot_timeline.values():
        events.extend(day.events)

    seen: set[str] = set()
    for event in events:
        if not event.id:
            raise ScriptValidationError("Event ids must be non-empty")
        if event.id in seen:
            raise ScriptValidationError(f"Duplicate event id {event.id!r}")
        seen.add(event.id)

    def check_branch(owner: str, target: str | None) -> None:
        if target is None:
            return
        if target == owner:
            raise ScriptValidationError(f"Event {owner!r} branches to itself")
        if target not in seen:
            raise ScriptValidationError(f"Event {owner!r} branches to unknown event {target!r}")

    for event in events:
        if isinstance(event, DailyEvent):
            for response in event.responses.values():
                check_branch(event.id, response.next_event)
            message_lists = [v.messages for v in event.variants]
        else:
            message_lists = [event.messages]
        for messages in message_lists:
            for message in messages:
                for option in message.options:
                    check_branch(event.id, option.next_event)
                if message.type == MessageType.TEXT and not (
                    message.content or message.content_key or message.template
                ):
                    raise ScriptValidationError(f"Event {event.id!r} has a text message with no content")
                if message.template and message.template not in script.message_templates:
                    raise ScriptValidationError(
                        f"Event {event.id!r} uses unknown template {message.template!r}"
                    )


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------

class EmittedMessage(BaseModel):
    """A fully resolved message handed to UI collaborators."""

    id: str
    event_id: str | None = None
    type: MessageType = MessageType.TEXT
    sender: Sender = Sender.BOT
    content: str = ""
    content_key: str | None = None
    delay_ms: int = 0
    bubble_style: BubbleStyle = BubbleStyle.NORMAL
    animation: AnimationType = AnimationType.SLIDE_IN
    text_effect: TextEffect = TextEffect.NONE
    properties: dict[str, Any] = Field(default_factory=dict)
    options: list[MessageOption] = Field(default_factory=list)
    input_config: InputConfig | None = None
    timestamp: datetime | None = None

    @property
    def requires_response(self) -> bool:
        return self.type in (MessageType.OPTIONS, MessageType.INPUT) or bool(self.options)


class ConversationState(BaseModel):
    """Durable per-user record. Everything needed to resume a suspended conversation."""

    script_version: str = ""
    day_in_journey: int = Field(1, ge=1)
    active_branches: list[str] = Field(default_factory=list)
    variables: Variables = Field(default_factory=dict)
    last_interaction: datetime | None = None

    # Suspension snapshot
    awaiting_response_for_message_id: str | None = None
    awaiting_message: EmittedMessage | None = None
    pending_messages: list[ScriptMessage] = Field(default_factory=list)
    current_event_id: str | None = None
    current_variant_id: str | None = None
    current_phase: Literal["plot", "daily"] | None = None
    queued_event_ids: list[str] = Field(default_factory=list)
    deferred_set_variables: Variables | None = None

    completed_events: list[str] = Field(default_factory=list)
    daily_completed: dict[str, str] = Field(default_factory=dict)  # event id → ISO date
    message_seq: int = 0


# ---------------------------------------------------------------------------
# ScriptValidationError — raised by parse_script for rejected documents
# ---------------------------------------------------------------------------

class ScriptValidationError(ValueError):
    """Raised when a script document is malformed or internally inconsistent."""
