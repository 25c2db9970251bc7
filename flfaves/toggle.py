"""
Tag state transitions for branches, storylets and cards.

Each element is in exactly one state: "fave", "avoid" or "none".

click_through:  none -> fave -> avoid -> none (modifier ignored)
modifier_click: plain click toggles fave, modifier click toggles avoid
"""

from typing import Literal

FaveState = Literal["fave", "avoid", "none"]

FAVE_STATES = ("fave", "avoid", "none")


def get_current_state(id: int, faves: set[int], avoids: set[int]) -> FaveState:
    """State of an element; fave wins if the ID is in both sets."""
    if id in faves:
        return "fave"
    if id in avoids:
        return "avoid"
    return "none"


def _modifier_transition(current: FaveState, is_modifier_click: bool) -> FaveState:
    if is_modifier_click:
        return "none" if current == "avoid" else "avoid"
    return "none" if current == "fave" else "fave"


def get_next_state(
    current: FaveState,
    switch_mode: str,
    is_modifier_click: bool = False,
) -> FaveState:
    """Next state for branches and storylets."""
    if switch_mode == "click_through":
        return {"none": "fave", "fave": "avoid", "avoid": "none"}[current]
    return _modifier_transition(current, is_modifier_click)


def get_next_card_state(
    current: FaveState,
    switch_mode: str,
    is_modifier_click: bool = False,
) -> FaveState:
    """
    Next state for cards.

    Same cycle as branches. Cards look up avoid before fave when reading
    from the page, so the table is written in that order.
    """
    if switch_mode == "click_through":
        return {"avoid": "none", "fave": "avoid", "none": "fave"}[current]
    return _modifier_transition(current, is_modifier_click)


def apply_state(id: int, state: FaveState, faves: set[int], avoids: set[int]) -> None:
    """Move an ID into the set for ``state``, keeping faves and avoids disjoint."""
    if state == "fave":
        faves.add(id)
        avoids.discard(id)
    elif state == "avoid":
        faves.discard(id)
        avoids.add(id)
    elif state == "none":
        faves.discard(id)
        avoids.discard(id)
    else:
        raise ValueError(f"Unknown state: {state}")
