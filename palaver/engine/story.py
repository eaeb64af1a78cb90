"""
Story handler dispatch for the Palaver engine.

Every inbound event goes through StoryHandlerBase.handle(), which
guarantees the turn ends with exactly one terminal action:

    RECEIVED -> PRECONDITION_CHECKED -> ENDED       -> COMPLETE
                                     -> HANDLER_RUN -> COMPLETE

- Preconditions may close the turn themselves by calling `bus.end()`;
  the handler definition is then never built.
- Otherwise a StoryHandlerDefinition is built for the call and its
  `handle()` is expected to call `end()`.
- A turn finishing without terminal action is logged, never raised.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from palaver.i18n import I18nLabelKey, bind_i18n_provider, key_from_default_label

from .definition import Intent

if TYPE_CHECKING:
    from .bus import BotBus
    from .definition import StoryDefinition
    from .dialog import Action

logger = logging.getLogger(__name__)

DEFAULT_I18N_NAMESPACE = "app"

# Precondition: called with the bus, may be sync or async
Precondition = Callable[["BotBus"], "Awaitable[None] | None"]


class DispatchState(str, Enum):
    """States of one dispatch."""

    RECEIVED = "received"
    PRECONDITION_CHECKED = "precondition_checked"
    ENDED = "ended"
    HANDLER_RUN = "handler_run"
    COMPLETE = "complete"


class HandlerOutcome(str, Enum):
    """How a dispatch left the turn."""

    COMPLETED = "completed"  # exactly one terminal action
    CONTINUED = "continued"  # no terminal action: handler bug


@dataclass(frozen=True)
class DispatchResult:
    """
    Result of StoryHandlerBase.handle().

    Attributes:
        outcome: Whether the turn was closed
        states: State transitions, in order
        story_id: Story whose handler ran
        delegated: Handling was delegated to the unknown story
    """

    outcome: HandlerOutcome
    states: tuple[DispatchState, ...]
    story_id: str | None = None
    delegated: bool = False

    @property
    def completed(self) -> bool:
        return self.outcome is HandlerOutcome.COMPLETED

    @property
    def ended_by_precondition(self) -> bool:
        return DispatchState.ENDED in self.states


class StoryHandlerDefinition(ABC):
    """
    Per-invocation handler context.

    Built from the bus for one call to StoryHandlerBase.handle() and
    discarded afterwards. Subclasses implement `handle()` and close the
    turn with `end()`.
    """

    def __init__(self, bus: BotBus):
        self.bus = bus

    @abstractmethod
    async def handle(self) -> None:
        """Produce the answer for this turn."""
        ...

    def send(self, text: str, *args: Any, delay_ms: int = 0):
        return self.bus.send(text, *args, delay_ms=delay_ms)

    def end(self, text: str | None = None, *args: Any, delay_ms: int = 0):
        return self.bus.end(text, *args, delay_ms=delay_ms)

    def translate(self, label: str, *args: Any) -> str:
        return self.bus.translate(label, *args)


T = TypeVar("T", bound=StoryHandlerDefinition)


async def _no_precondition(bus: BotBus) -> None:
    return None


def _terminal_after(bus: BotBus) -> Action | None:
    """Terminal action appended to the bus story after the inbound action."""
    actions = bus.story.actions
    start = next((i + 1 for i, action in enumerate(actions) if action is bus.action), 0)
    return next((action for action in actions[start:] if action.metadata.last_answer), None)


class StoryHandlerBase(ABC, Generic[T]):
    """
    Base implementation of a story handler.

    Also acts as the i18n key provider while it handles a bus: label keys
    are prefixed with the main intent name.

    Subclasses must implement:
    - new_handler_definition(): build the per-call definition

    Example:
        class WeatherDefinition(StoryHandlerDefinition):
            async def handle(self):
                self.end("It is sunny")

        class WeatherStoryHandler(StoryHandlerBase[WeatherDefinition]):
            def new_handler_definition(self, bus):
                return WeatherDefinition(bus)
    """

    def __init__(
        self,
        main_intent_name: str | None = None,
        *,
        i18n_namespace: str | None = None,
    ):
        self._main_intent_name = main_intent_name
        self._i18n_namespace = i18n_namespace

    # ==================== Dispatch ====================

    def check_preconditions(self) -> Precondition:
        """
        Precondition run before the handler definition is built.

        If it calls `bus.end()`, `new_handler_definition()` is not called
        and the turn is over.
        """
        return _no_precondition

    @abstractmethod
    def new_handler_definition(self, bus: BotBus) -> T:
        """Instantiate the handler definition for this call."""
        ...

    async def setup_handler_definition(self, bus: BotBus) -> T | None:
        """
        Run preconditions and build the handler definition.

        Returns:
            None if the preconditions ended the turn
        """
        result = self.check_preconditions()(bus)
        if inspect.isawaitable(result):
            await result
        if self._is_end_called(bus):
            return None
        return self.new_handler_definition(bus)

    def _is_end_called(self, bus: BotBus) -> bool:
        """
        Has the turn already been closed?

        True when `end()` was called on the bus, or when an action appended
        to the current story after the one being processed is terminal.
        """
        return bus.ended or _terminal_after(bus) is not None

    async def handle(self, bus: BotBus) -> DispatchResult:
        """
        Handle one inbound event.

        Do not override: customize check_preconditions() and
        new_handler_definition() instead.
        """
        story = self.find_story_definition(bus)
        if (
            story is not None
            and story is not bus.bot_definition.unknown_story
            and not story.supports(bus.user_interface_type)
        ):
            logger.debug(
                f"Story {story.story_id} does not support {bus.user_interface_type.value} "
                "- switching to unknown story"
            )
            return await self._delegate_to_unknown(bus)

        states = [DispatchState.RECEIVED]
        bus.i18n_provider = self
        with bind_i18n_provider(self):
            handler = await self.setup_handler_definition(bus)
            states.append(DispatchState.PRECONDITION_CHECKED)

            if handler is None:
                logger.debug("end called in preconditions - skip action")
                states.append(DispatchState.ENDED)
            else:
                states.append(DispatchState.HANDLER_RUN)
                await handler.handle()

        states.append(DispatchState.COMPLETE)

        if bus.ended or _terminal_after(bus) is not None:
            outcome = HandlerOutcome.COMPLETED
        else:
            logger.warning(
                f"Bus.end not called in story {story.story_id if story else '?'} "
                f"for intent {bus.intent}"
            )
            outcome = HandlerOutcome.CONTINUED

        return DispatchResult(
            outcome=outcome,
            states=tuple(states),
            story_id=story.story_id if story else None,
        )

    async def _delegate_to_unknown(self, bus: BotBus) -> DispatchResult:
        unknown = bus.bot_definition.unknown_story
        result = await unknown.handler.handle(bus)
        if isinstance(result, DispatchResult):
            return replace(result, delegated=True)

        outcome = HandlerOutcome.COMPLETED if bus.ended else HandlerOutcome.CONTINUED
        return DispatchResult(
            outcome=outcome,
            states=(DispatchState.RECEIVED, DispatchState.COMPLETE),
            story_id=unknown.story_id,
            delegated=True,
        )

    def find_story_definition(self, bus: BotBus) -> StoryDefinition | None:
        """Story this handler was declared with, from the bot lookup table."""
        return bus.bot_definition.story_for_handler(self)

    # ==================== I18n ====================

    @property
    def i18n_namespace(self) -> str:
        return self._i18n_namespace or DEFAULT_I18N_NAMESPACE

    def _main_intent(self) -> str | None:
        if self._main_intent_name:
            return self._main_intent_name
        name = self.__class__.__name__.lower().replace("storyhandler", "")
        return name or None

    def i18n_key_prefix(self) -> str:
        return self._main_intent() or self.i18n_namespace

    def i18n_key_from_label(self, default_label: str, args: Sequence[Any] = ()) -> I18nLabelKey:
        prefix = self.i18n_key_prefix()
        return I18nLabelKey(
            key=f"{prefix}_{key_from_default_label(default_label)}",
            namespace=self.i18n_namespace,
            category=prefix,
            default_label=str(default_label),
            args=tuple(args),
        )

    def i18n_key(self, key: str, default_label: str, *args: Any) -> I18nLabelKey:
        """Label key with an explicit key in the handler namespace."""
        return I18nLabelKey(
            key=key,
            namespace=self.i18n_namespace,
            category=self.i18n_key_prefix(),
            default_label=str(default_label),
            args=args,
        )

    def wrapped_intent(self) -> Intent:
        name = self._main_intent()
        if name is None:
            raise ValueError(f"unknown main intent name for {self.__class__.__name__}")
        return Intent(name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(intent='{self._main_intent()}')"


class SimpleStoryHandler(StoryHandlerBase[StoryHandlerDefinition]):
    """
    Story handler built from coroutines, for small stories.

    Example:
        async def greet(definition):
            definition.end("Hello!")

        story = StoryDefinition("greetings", SimpleStoryHandler(greet, "greetings"))
    """

    def __init__(
        self,
        handle: Callable[[StoryHandlerDefinition], Awaitable[None]],
        main_intent_name: str | None = None,
        *,
        precondition: Precondition | None = None,
        i18n_namespace: str | None = None,
    ):
        super().__init__(main_intent_name, i18n_namespace=i18n_namespace)
        self._handle = handle
        self._precondition = precondition

    def check_preconditions(self) -> Precondition:
        return self._precondition or _no_precondition

    def new_handler_definition(self, bus: BotBus) -> StoryHandlerDefinition:
        return _CallableDefinition(bus, self._handle)


class _CallableDefinition(StoryHandlerDefinition):
    def __init__(self, bus: BotBus, handle: Callable[[StoryHandlerDefinition], Awaitable[None]]):
        super().__init__(bus)
        self._handle = handle

    async def handle(self) -> None:
        await self._handle(self)
