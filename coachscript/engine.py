"""Conversation engine — walks script events and suspends for user replies.

Flow states:

    IDLE ──start()──▶ EMITTING ──interactive message──▶ AWAITING_RESPONSE
      ▲                  │                                   │
      └──all drained─────┘◀──select_option()/submit_input()──┘

    SUSPENDED is AWAITING_RESPONSE as seen after a restart: the awaited
    message and the remaining messages were loaded from the state store.

One processing pass:
  1. Advance the journey day (at most once per calendar day) and refresh
     the session.* variables.
  2. Queue the plot events eligible for the current journey day and play
     them in order.
  3. When the plot queue is empty, queue the eligible daily events (by
     priority) and play them.
  4. Playing an event: pick a variant (daily events), then emit its messages
     one by one. An interactive message stops the pass; the rest of the
     event is snapshotted into pending_messages.
  5. When an event's messages are all emitted, its set_variables apply.

Everything needed to resume lives in ConversationState and is saved after
every step, so a suspended conversation survives a process restart.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from coachscript.actions import apply_set_variables
from coachscript.content import ContentResolver, split_sequence
from coachscript.models import (
    AnimationType,
    BubbleStyle,
    ConversationState,
    DailyEvent,
    EmittedMessage,
    EventResponse,
    InputConfig,
    MessageOption,
    MessageType,
    PlotEvent,
    Script,
    ScriptMessage,
    Sender,
    TextEffect,
)
from coachscript.scheduler import eligible_daily_events, eligible_plot_events
from coachscript.session import advance_journey, refresh_session
from coachscript.storage import CorruptCacheError, StateStore, utcnow
from coachscript.templating import TemplateEngine
from coachscript.variants import select_variant

logger = logging.getLogger(__name__)

STATE_KEY = "conversation_state"
LAST_INPUT_KEY = "user.last_input"
LAST_OPTION_KEY = "user.last_option"
ACHIEVEMENTS_KEY = "user.achievements"

DEFAULT_VARIABLES: dict[str, Any] = {
    "user.first_time": True,
    "user.streak": 0,
    "user.total_completions": 0,
    "user.total_failures": 0,
}

DEFAULT_INPUT_ERROR = "That doesn't look right. Try again."


class FlowState(str, Enum):
    IDLE = "idle"
    EMITTING = "emitting"
    AWAITING_RESPONSE = "awaiting_response"
    SUSPENDED = "suspended"


class ConversationEngine:
    """Drives one user's conversation against one Script.

    Args:
        script:    The loaded Script.
        store:     State store for this conversation.
        resolver:  Content resolver for semantic keys.
        templates: Template engine; a formatter-less one is used if omitted.
        rng:       Random source for variant and content picks.
        sleep:     Awaited with the delay (seconds) of each paced message.
        clock:     Returns the current time.
        tz:        Zone the user lives in; time windows, session.* and the
                   journey day use the clock converted to it. Defaults to
                   the server's local zone.
        pace:      When False, message delays are reported but not slept.
    """

    def __init__(
        self,
        script: Script,
        store: StateStore,
        resolver: ContentResolver,
        templates: TemplateEngine | None = None,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        tz: tzinfo | None = None,
        pace: bool = True,
    ) -> None:
        self._script = script
        self._store = store
        self._resolver = resolver
        self._templates = templates or TemplateEngine()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._tz = tz
        self._pace = pace
        self._now: datetime | None = None
        self._fired_triggers: tuple[str, ...] = ()
        self._state = self._load_state()
        self._flow = FlowState.SUSPENDED if self._state.awaiting_response_for_message_id else FlowState.IDLE

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def script(self) -> Script:
        return self._script

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def flow_state(self) -> FlowState:
        return self._flow

    @property
    def variables(self) -> dict[str, Any]:
        return self._state.variables

    @property
    def awaiting_message(self) -> EmittedMessage | None:
        return self._state.awaiting_message

    @property
    def is_awaiting_response(self) -> bool:
        return self._state.awaiting_response_for_message_id is not None

    async def start(
        self, now: datetime | None = None, triggers: Iterable[str] = ()
    ) -> list[EmittedMessage]:
        """Run one processing pass. Returns [] while a reply is still awaited.

        `triggers` names non-time trigger types that fired (e.g. "app_open");
        daily events using them become eligible for this pass.
        """
        self._ensure_not_emitting()
        now = self._local(now or self._clock())
        if self.is_awaiting_response:
            logger.debug("start() while awaiting %s, nothing to do", self._state.awaiting_response_for_message_id)
            return []

        if advance_journey(self._state, now):
            logger.info("Journey advanced to day %d", self._state.day_in_journey)
            self._state.variables["user.first_time"] = False
        refresh_session(self._state.variables, now)
        self._state.last_interaction = now
        self._fired_triggers = tuple(triggers)
        self._state.current_phase = "plot"
        self._state.queued_event_ids = [
            e.id for e in eligible_plot_events(self._script, self._state)
            if e.id != self._state.current_event_id
        ]
        return await self._run(now)

    async def select_option(
        self, message_id: str, option_id: str, now: datetime | None = None
    ) -> list[EmittedMessage]:
        """Answer the awaited options message. Stale or unknown ids are ignored."""
        self._ensure_not_emitting()
        if not self._is_awaited(message_id):
            return []
        awaiting = self._state.awaiting_message
        if awaiting is None:
            return []

        option = next((o for o in awaiting.options if o.id == option_id), None)
        event = self._script.find_daily_event(self._state.current_event_id or "")
        response = event.responses.get(option_id) if event else None
        if option is None and response is None:
            logger.warning("Ignoring unknown option %r for message %s", option_id, message_id)
            return []
        if option is not None and not option.enabled:
            logger.warning("Ignoring disabled option %r for message %s", option_id, message_id)
            return []

        merged = merge_response(option, response)
        now = self._local(now or self._clock())
        self._clear_awaiting()
        self._state.last_interaction = now
        self._record_reply(option.text if option else option_id)
        self._state.variables[LAST_OPTION_KEY] = option_id
        apply_set_variables(self._state.variables, merged.set_variables)
        if merged.achievement_id:
            self._record_achievement(merged.achievement_id)
        if merged.next_event:
            self._branch(merged.next_event)
        return await self._run(now)

    async def submit_input(
        self, message_id: str, text: str, now: datetime | None = None
    ) -> list[EmittedMessage]:
        """Answer the awaited input message.

        Text failing the message's max length or validation pattern is
        rejected: a system message carrying the error is returned and the
        conversation keeps waiting.
        """
        self._ensure_not_emitting()
        if not self._is_awaited(message_id):
            return []
        awaiting = self._state.awaiting_message
        if awaiting is None:
            return []
        if awaiting.type != MessageType.INPUT and awaiting.input_config is None:
            logger.warning("Ignoring free text for options message %s", message_id)
            return []

        config = awaiting.input_config
        error = validate_input(config, text)
        if error is not None:
            return [EmittedMessage(
                id=f"{message_id}-error",
                event_id=awaiting.event_id,
                sender=Sender.SYSTEM,
                content=error,
                bubble_style=BubbleStyle.ERROR,
                timestamp=now or self._clock(),
            )]

        now = self._local(now or self._clock())
        self._clear_awaiting()
        self._state.last_interaction = now
        self._record_reply(text)
        self._state.variables[LAST_INPUT_KEY] = text
        if config is not None and config.store_as:
            self._state.variables[config.store_as] = text
        return await self._run(now)

    def set_variables(self, updates: dict[str, Any]) -> dict[str, Any]:
        """External mutation for debugging and tests. Not allowed mid-emission."""
        self._ensure_not_emitting()
        apply_set_variables(self._state.variables, updates)
        self._save()
        return dict(self._state.variables)

    def reset(self) -> None:
        """Forget all state and history for this conversation."""
        self._ensure_not_emitting()
        self._store.delete_state(STATE_KEY)
        self._store.clear_history()
        self._state = self._new_state()
        self._flow = FlowState.IDLE
        logger.info("Conversation reset")

    # ------------------------------------------------------------------
    # Processing loop
    # ------------------------------------------------------------------

    async def _run(self, now: datetime) -> list[EmittedMessage]:
        emitted: list[EmittedMessage] = []
        self._now = now
        self._flow = FlowState.EMITTING
        try:
            while True:
                if self._state.current_event_id is not None:
                    if not await self._drain(emitted):
                        self._flow = FlowState.AWAITING_RESPONSE
                        return emitted
                    self._close_event(apply_deferred=True)
                    continue

                if self._state.queued_event_ids:
                    self._open_event(self._state.queued_event_ids.pop(0))
                    continue

                if self._state.current_phase == "plot":
                    self._state.current_phase = "daily"
                    self._state.queued_event_ids = [
                        e.id for e in eligible_daily_events(self._script, self._state, now, self._fired_triggers)
                    ]
                    continue

                self._state.current_phase = None
                self._flow = FlowState.IDLE
                return emitted
        finally:
            if self._flow == FlowState.EMITTING:
                self._flow = FlowState.IDLE
            self._save()

    def _open_event(self, event_id: str) -> None:
        event = self._script.find_event(event_id)
        if event is None:
            logger.warning("Event %s is not in script %s", event_id, self._script.version)
            return

        if isinstance(event, DailyEvent):
            variant = select_variant(event.variants, self._state.variables, self._rng)
            if variant is None:
                logger.info("No variant of %s matches, skipping", event_id)
                return
            messages, deferred, variant_id = variant.messages, variant.set_variables, variant.id
        else:
            messages, deferred, variant_id = event.messages, event.set_variables, None

        logger.debug("Opening event %s (variant %s)", event_id, variant_id)
        self._state.current_event_id = event.id
        self._state.current_variant_id = variant_id
        self._state.pending_messages = list(messages)
        self._state.deferred_set_variables = dict(deferred) if deferred else None
        if event.id not in self._state.active_branches:
            self._state.active_branches.append(event.id)

    def _close_event(self, apply_deferred: bool) -> None:
        event_id = self._state.current_event_id
        if event_id is None:
            return
        if apply_deferred:
            apply_set_variables(self._state.variables, self._state.deferred_set_variables)
        if isinstance(self._script.find_event(event_id), PlotEvent):
            if event_id not in self._state.completed_events:
                self._state.completed_events.append(event_id)
        else:
            self._state.daily_completed[event_id] = (self._now or self._local(self._clock())).date().isoformat()
        if event_id in self._state.active_branches:
            self._state.active_branches.remove(event_id)
        self._state.current_event_id = None
        self._state.current_variant_id = None
        self._state.pending_messages = []
        self._state.deferred_set_variables = None
        logger.debug("Closed event %s", event_id)

    def _branch(self, target: str) -> None:
        if target in self._state.active_branches:
            logger.warning("Refusing to re-enter open event %s, resuming instead", target)
            return
        if self._script.find_event(target) is None:
            logger.warning("Branch target %s is not in script %s", target, self._script.version)
            return
        logger.debug("Branching from %s to %s", self._state.current_event_id, target)
        self._close_event(apply_deferred=False)
        if target in self._state.queued_event_ids:
            self._state.queued_event_ids.remove(target)
        self._open_event(target)

    async def _drain(self, emitted: list[EmittedMessage]) -> bool:
        """Emit pending messages. Returns False if one of them awaits a reply."""
        while self._state.pending_messages:
            # popped only once emitted, so a cancelled sleep leaves it pending
            message = self._state.pending_messages[0]
            if message.type == MessageType.DELAY:
                if self._pace and message.delay:
                    await self._sleep(message.delay / 1000)
                self._state.pending_messages.pop(0)
                continue

            rendered = self._render(message)
            for out in rendered:
                await self._emit(out, emitted)
            self._state.pending_messages.pop(0)
            last = rendered[-1]
            if last.requires_response:
                self._state.awaiting_response_for_message_id = last.id
                self._state.awaiting_message = last
                logger.debug("Awaiting response to %s", last.id)
                return False
        return True

    async def _emit(self, message: EmittedMessage, emitted: list[EmittedMessage]) -> None:
        if self._pace and message.delay_ms:
            await self._sleep(message.delay_ms / 1000)
        emitted.append(message)
        self._store.append_history(message.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self, message: ScriptMessage) -> list[EmittedMessage]:
        """Resolve, split and template a script message into emitted messages."""
        variables = self._state.variables
        parts = split_sequence(self._raw_text(message))
        options = [self._render_option(o) for o in message.options]
        props = message.properties

        rendered = []
        for index, part in enumerate(parts):
            last = index == len(parts) - 1
            rendered.append(self._build(
                message,
                content=self._templates.apply(part, variables),
                type=message.type if last else MessageType.TEXT,
                options=options if last else [],
                bubble_style=BubbleStyle.from_script(props.get("bubble_style", props.get("bubbleStyle"))),
                animation=AnimationType.from_script(props.get("animation")),
                text_effect=TextEffect.from_script(props.get("text_effect", props.get("textEffect"))),
                input_config=message.input_config if last else None,
            ))
        return rendered

    def _raw_text(self, message: ScriptMessage) -> str:
        if message.template:
            template = self._script.message_templates.get(message.template)
            if template is not None:
                return template.apply(self._state.variables)
        if message.content_key:
            tags = message.properties.get("context_tags") or ()
            if isinstance(tags, str):
                tags = [tags]
            return self._resolver.resolve(message.content_key, fallback=message.content or "", context_tags=tags)
        if message.content:
            return self._resolver.resolve(message.content, fallback=message.content)
        return ""

    def _render_option(self, option: MessageOption) -> MessageOption:
        text = self._resolver.resolve(option.content_key, fallback=option.text) if option.content_key else option.text
        return option.model_copy(update={"text": self._templates.apply(text, self._state.variables)})

    def _build(self, message: ScriptMessage, **fields: Any) -> EmittedMessage:
        self._state.message_seq += 1
        return EmittedMessage(
            id=f"m{self._state.message_seq}",
            event_id=self._state.current_event_id,
            sender=message.sender,
            content_key=message.content_key,
            delay_ms=message.delay,
            properties=dict(message.properties),
            timestamp=self._clock(),
            **fields,
        )

    def _record_reply(self, text: str) -> None:
        self._state.message_seq += 1
        reply = EmittedMessage(
            id=f"m{self._state.message_seq}",
            event_id=self._state.current_event_id,
            sender=Sender.USER,
            content=text,
            animation=AnimationType.NONE,
            timestamp=self._clock(),
        )
        self._store.append_history(reply.model_dump(mode="json"))

    def _record_achievement(self, achievement_id: str) -> None:
        achievements = list(self._state.variables.get(ACHIEVEMENTS_KEY) or [])
        if achievement_id not in achievements:
            achievements.append(achievement_id)
            logger.info("Achievement unlocked: %s", achievement_id)
        self._state.variables[ACHIEVEMENTS_KEY] = achievements

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _local(self, now: datetime) -> datetime:
        # naive times are taken as already local
        if now.tzinfo is None:
            return now
        return now.astimezone(self._tz)

    def _is_awaited(self, message_id: str) -> bool:
        expected = self._state.awaiting_response_for_message_id
        if expected is None or message_id != expected:
            logger.warning("Ignoring stale response for %s (awaiting %s)", message_id, expected)
            return False
        return True

    def _clear_awaiting(self) -> None:
        self._state.awaiting_response_for_message_id = None
        self._state.awaiting_message = None

    def _ensure_not_emitting(self) -> None:
        if self._flow == FlowState.EMITTING:
            raise EngineBusyError("Conversation is emitting messages")

    def _new_state(self) -> ConversationState:
        return ConversationState(
            script_version=self._script.version,
            variables={**DEFAULT_VARIABLES, **self._script.global_variables},
        )

    def _load_state(self) -> ConversationState:
        try:
            raw = self._store.get_state(STATE_KEY)
        except CorruptCacheError as e:
            logger.warning("Conversation state unreadable, starting over: %s", e)
            raw = None
        if raw is None:
            return self._new_state()

        state = ConversationState.model_validate(raw)
        for key, value in {**DEFAULT_VARIABLES, **self._script.global_variables}.items():
            state.variables.setdefault(key, value)
        if state.script_version != self._script.version:
            logger.info("Conversation moves from script %s to %s", state.script_version, self._script.version)
            state.script_version = self._script.version
        return state

    def _save(self) -> None:
        self._store.save_state(STATE_KEY, self._state.model_dump(mode="json"))


def merge_response(option: MessageOption | None, response: EventResponse | None) -> EventResponse:
    """Combine an option's own consequences with the event's response; the response wins."""
    set_variables: dict[str, Any] = {}
    if option is not None and option.set_variables:
        set_variables.update(option.set_variables)
    if response is not None and response.set_variables:
        set_variables.update(response.set_variables)

    def pick(field: str) -> Any:
        value = getattr(response, field, None) if response is not None else None
        if value is None and option is not None:
            value = getattr(option, field)
        return value

    return EventResponse(
        next_event=pick("next_event"),
        set_variables=set_variables or None,
        achievement_id=pick("achievement_id"),
    )


def validate_input(config: InputConfig | None, text: str) -> str | None:
    """Return an error message when `text` breaks the input config, else None."""
    if config is None:
        return None
    error = config.error_message or DEFAULT_INPUT_ERROR
    if config.max_length is not None and len(text) > config.max_length:
        return error
    if config.validation_regex:
        try:
            if re.fullmatch(config.validation_regex, text) is None:
                return error
        except re.error:
            logger.warning("Invalid validation pattern %r", config.validation_regex)
    return None


# ---------------------------------------------------------------------------
# EngineBusyError — a call arrived while messages are being emitted
# ---------------------------------------------------------------------------

class EngineBusyError(RuntimeError):
    """Raised when the engine is re-entered during emission."""
