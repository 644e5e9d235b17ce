"""Drag-and-drop reordering as an explicit state machine.

A gesture is ``Idle -> Dragging(source) -> Idle``. ``transition`` is pure: it
maps the current state and one gesture event to the next state and the effect
to apply. ``DragReorderController`` owns the state for one session and applies
effects to the file list.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from filemerger.core.errors import OrderingDisabledError
from filemerger.core.logging import configure_logging
from filemerger.services.file_list import OrderedFileList

logger = configure_logging()


class GestureType(str, Enum):
    start = "start"
    over = "over"
    drop_insertion = "drop_insertion"
    drop_item = "drop_item"
    end = "end"


class EffectType(str, Enum):
    none = "none"
    highlight = "highlight"
    move = "move"
    swap = "swap"
    ignored = "ignored"


@dataclass(frozen=True)
class Gesture:
    type: GestureType
    index: Optional[int] = None
    insertion_point: Optional[int] = None
    target_index: Optional[int] = None


@dataclass(frozen=True)
class DragState:
    source_index: Optional[int] = None
    highlighted: Optional[int] = None

    @property
    def dragging(self) -> bool:
        return self.source_index is not None


@dataclass(frozen=True)
class Effect:
    type: EffectType
    source_index: Optional[int] = None
    target: Optional[int] = None


IDLE = DragState()


def transition(state: DragState, gesture: Gesture) -> Tuple[DragState, Effect]:
    kind = gesture.type

    if kind is GestureType.start:
        if gesture.index is None:
            return state, Effect(EffectType.ignored)
        return DragState(source_index=gesture.index), Effect(EffectType.none, gesture.index)

    if kind is GestureType.end:
        return IDLE, Effect(EffectType.none)

    if not state.dragging:
        return state, Effect(EffectType.ignored)

    if kind is GestureType.over:
        if gesture.insertion_point is None:
            return state, Effect(EffectType.ignored)
        return (
            DragState(source_index=state.source_index, highlighted=gesture.insertion_point),
            Effect(EffectType.highlight, state.source_index, gesture.insertion_point),
        )

    # Drops must belong to the gesture being tracked.
    source = state.source_index if gesture.index is None else gesture.index
    if source != state.source_index:
        return state, Effect(EffectType.ignored)

    if kind is GestureType.drop_insertion and gesture.insertion_point is not None:
        return IDLE, Effect(EffectType.move, source, gesture.insertion_point)

    if kind is GestureType.drop_item and gesture.target_index is not None:
        if gesture.target_index == source:
            return IDLE, Effect(EffectType.none, source)
        return IDLE, Effect(EffectType.swap, source, gesture.target_index)

    return state, Effect(EffectType.ignored)


class DragReorderController:
    """Tracks the active drag gesture of one session."""

    def __init__(self, file_list: OrderedFileList) -> None:
        self.file_list = file_list
        self.state = IDLE

    def handle(self, gesture: Gesture) -> Effect:
        if not self.file_list.ordering_enabled:
            raise OrderingDisabledError("Enable ordering mode before reordering files.")

        self.state, effect = transition(self.state, gesture)

        if effect.type is EffectType.move:
            self.file_list.move_to_insertion_point(effect.source_index, effect.target)
            logger.info("Moved file %s to insertion point %s", effect.source_index, effect.target)
        elif effect.type is EffectType.swap:
            self.file_list.swap(effect.source_index, effect.target)
            logger.info("Swapped files %s and %s", effect.source_index, effect.target)
        elif effect.type is EffectType.ignored:
            logger.debug("Ignored %s gesture in state %s", gesture.type.value, self.state)
        return effect

    def cancel(self) -> None:
        self.state = IDLE
