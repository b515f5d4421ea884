# castudio
# Copyright 2025 - Ricardo Quesada

import re
from dataclasses import asdict, dataclass, field
from typing import Self

BASE_STATE_NAME = "Base State"
# Written when a document has no states of its own.
DEFAULT_STATE_NAMES = ["Locked", "Unlock", "Sleep"]
# "Any state", valid as from_state or to_state.
WILDCARD_STATE = "*"

_BASE_STATE_RE = re.compile(r"^base(\s*state)?$", re.IGNORECASE)


def is_base_state(name: str) -> bool:
    """Base state is implicit: it is never written as an LKState."""
    return _BASE_STATE_RE.match(name.strip()) is not None


@dataclass
class StateOverride:
    target_id: str
    key_path: str
    # int / float or str
    value: float | int | str

    @classmethod
    def from_dict(cls, d: dict) -> Self:
        return cls(target_id=d["target_id"], key_path=d["key_path"], value=d["value"])

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TransitionAnimation:
    type: str = "CASpringAnimation"
    damping: float | None = None
    mass: float | None = None
    stiffness: float | None = None
    velocity: float | None = None
    duration: float | None = None
    fill_mode: str | None = None
    key_path: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> Self:
        anim = cls()
        for k, v in d.items():
            if hasattr(anim, k):
                setattr(anim, k, v)
        return anim

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class TransitionElement:
    target_id: str
    key_path: str
    animation: TransitionAnimation | None = None

    @classmethod
    def from_dict(cls, d: dict) -> Self:
        animation = None
        if d.get("animation"):
            animation = TransitionAnimation.from_dict(d["animation"])
        return cls(target_id=d["target_id"], key_path=d["key_path"], animation=animation)

    def to_dict(self) -> dict:
        d = {"target_id": self.target_id, "key_path": self.key_path}
        if self.animation is not None:
            d["animation"] = self.animation.to_dict()
        return d


@dataclass
class StateTransition:
    from_state: str
    to_state: str
    elements: list[TransitionElement] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict) -> Self:
        elements = [TransitionElement.from_dict(e) for e in d.get("elements", [])]
        return cls(from_state=d["from_state"], to_state=d["to_state"], elements=elements)

    def to_dict(self) -> dict:
        return {
            "from_state": self.from_state,
            "to_state": self.to_state,
            "elements": [e.to_dict() for e in self.elements],
        }


def default_transitions() -> list[StateTransition]:
    """The transitions written when a document has none: in and out of each default state."""
    transitions = []
    for name in ("Unlock", "Locked", "Sleep"):
        transitions.append(StateTransition(WILDCARD_STATE, name))
        transitions.append(StateTransition(name, WILDCARD_STATE))
    return transitions


def spring_animation(key_path: str) -> TransitionAnimation:
    return TransitionAnimation(
        type="CASpringAnimation",
        damping=50,
        mass=2,
        stiffness=300,
        velocity=0,
        duration=0.8,
        fill_mode="backwards",
        key_path=key_path,
    )


def spring_transitions_for(
    state_names: list[str], state_overrides: dict[str, list[StateOverride]]
) -> list[StateTransition]:
    """
    Generates a "*" -> state and a state -> "*" transition for every state.
    Each transition animates, with a spring, every key path overridden in that state.

    The states with overrides come first, in state order. Then the ones
    without overrides, whose transitions have no elements.

    Returns an empty list when there are no states other than the base state.
    """
    names = [n for n in state_names if not is_base_state(n)]
    with_overrides = [n for n in names if state_overrides.get(n)]
    transitions = []
    for state_name in with_overrides + [n for n in names if n not in with_overrides]:
        keys = []
        for ov in state_overrides.get(state_name, []):
            if (ov.target_id, ov.key_path) not in keys:
                keys.append((ov.target_id, ov.key_path))
        for from_state, to_state in ((WILDCARD_STATE, state_name), (state_name, WILDCARD_STATE)):
            elements = [
                TransitionElement(target_id, key_path, spring_animation(key_path))
                for target_id, key_path in keys
            ]
            transitions.append(StateTransition(from_state, to_state, elements))
    return transitions


def overrides_to_list(state_overrides: dict[str, list[StateOverride]]) -> list[dict]:
    """Flattens the overrides so they can be stored as a toml array of tables."""
    out = []
    for state_name, overrides in state_overrides.items():
        for ov in overrides:
            d = ov.to_dict()
            d["state"] = state_name
            out.append(d)
    return out


def overrides_from_list(items: list[dict], state_names: list[str] | None = None) -> dict[str, list[StateOverride]]:
    result = {name: [] for name in (state_names or [])}
    for d in items:
        result.setdefault(d["state"], []).append(StateOverride.from_dict(d))
    return result


def transitions_to_lists(transitions: list[StateTransition]) -> tuple[list[dict], list[dict]]:
    """
    Flattens the transitions so they can be stored as two toml arrays of tables.

    Returns:
        A tuple (transitions, elements). Each element dict refers to its
        transition with the "transition" index.
    """
    trans = []
    elements = []
    for i, t in enumerate(transitions):
        trans.append({"from_state": t.from_state, "to_state": t.to_state})
        for e in t.elements:
            d = {"transition": i, "target_id": e.target_id, "key_path": e.key_path}
            if e.animation is not None:
                for k, v in e.animation.to_dict().items():
                    d[f"animation_{k}"] = v
            elements.append(d)
    return trans, elements


def transitions_from_lists(trans: list[dict], elements: list[dict]) -> list[StateTransition]:
    transitions = [StateTransition.from_dict(d) for d in trans]
    for d in elements:
        idx = d["transition"]
        if idx < 0 or idx >= len(transitions):
            continue
        anim_d = {k.removeprefix("animation_"): v for k, v in d.items() if k.startswith("animation_")}
        animation = TransitionAnimation.from_dict(anim_d) if anim_d else None
        transitions[idx].elements.append(TransitionElement(d["target_id"], d["key_path"], animation))
    return transitions
