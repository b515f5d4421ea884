# castudio
# Copyright 2025 - Ricardo Quesada

import copy
import logging
from enum import IntEnum, auto

from PySide6.QtGui import QUndoCommand

from ca_states import StateOverride, StateTransition
from geometry import Vec2
from layer import Layer
from layer_tree import iter_layers, update_in_tree
from project import CAProject, ProjectPropertyFlags

logger = logging.getLogger(__name__)


class CommandID(IntEnum):
    # Add commands that can be compressed/merged.
    POSITION_COMMAND_ID = auto()


class ReplaceTreeCommand(QUndoCommand):
    """
    Swaps the document's root layer.

    Trees are immutable, so undo just restores the previous root.
    """

    def __init__(self, document, new_root: Layer, text: str, parent: QUndoCommand | None):
        super().__init__(text, parent)
        self._document = document
        self._old_root = document.root
        self._new_root = new_root

    def undo(self) -> None:
        self._document._set_root(self._old_root)

    def redo(self) -> None:
        self._document._set_root(self._new_root)


class AddLayerCommand(ReplaceTreeCommand):
    def __init__(self, document, new_root: Layer, layer: Layer, parent: QUndoCommand | None):
        super().__init__(document, new_root, f"New Layer: {layer.name}", parent)
        self._layer = layer

    def undo(self) -> None:
        self._document._set_root(self._old_root, removed=self._layer)

    def redo(self) -> None:
        self._document._set_root(self._new_root, added=self._layer)


class DeleteLayerCommand(ReplaceTreeCommand):
    """Also drops the state overrides and transition elements that target the deleted layers."""

    def __init__(self, document, new_root: Layer, layer: Layer, parent: QUndoCommand | None):
        super().__init__(document, new_root, f"Delete Layer: {layer.name}", parent)
        self._layer = layer
        removed_ids = {removed.id for removed in iter_layers(layer)}
        overrides = {
            state: [ov for ov in ovs if ov.target_id not in removed_ids]
            for state, ovs in document.state_overrides.items()
        }
        transitions = [
            StateTransition(t.from_state, t.to_state, [e for e in t.elements if e.target_id not in removed_ids])
            for t in document.state_transitions
        ]
        self._old_states = copy.deepcopy((document.state_overrides, document.state_transitions))
        self._new_states = copy.deepcopy((overrides, transitions))

    def _restore_states(self, states: tuple) -> None:
        if self._old_states != self._new_states:
            self._document._set_states(self._document.states, *copy.deepcopy(states))

    def undo(self) -> None:
        self._document._set_root(self._old_root, added=self._layer)
        self._restore_states(self._old_states)

    def redo(self) -> None:
        self._restore_states(self._new_states)
        self._document._set_root(self._new_root, removed=self._layer)


class UpdateLayerCommand(ReplaceTreeCommand):
    def __init__(self, document, layer: Layer, changes: dict, parent: QUndoCommand | None):
        new_root = update_in_tree(document.root, layer.id, **changes)
        names = ", ".join(changes)
        super().__init__(document, new_root, f"Update {layer.name}: {names}", parent)
        self._layer_id = layer.id

    def undo(self) -> None:
        self._document._set_root(self._old_root, changed_id=self._layer_id)

    def redo(self) -> None:
        self._document._set_root(self._new_root, changed_id=self._layer_id)


class UpdateLayerPositionCommand(UpdateLayerCommand):
    def __init__(self, document, layer: Layer, position: Vec2, parent: QUndoCommand | None):
        super().__init__(document, layer, {"position": position}, parent)
        self._position = position
        self._update_text(layer.position)

    def _update_text(self, old_position: Vec2) -> None:
        if old_position.x == self._position.x:
            self.setText(f"Position Y: {self._position.y}")
        elif old_position.y == self._position.y:
            self.setText(f"Position X: {self._position.x}")
        else:
            self.setText(f"Position XY: ({self._position.x}, {self._position.y})")

    def id(self) -> int:
        return CommandID.POSITION_COMMAND_ID

    def mergeWith(self, other: QUndoCommand) -> bool:
        if not isinstance(other, UpdateLayerPositionCommand):
            return False
        if self._layer_id != other._layer_id:
            return False
        # other was created on top of this command's tree
        self._new_root = other._new_root
        self._position = other._position
        self.setText(f"Position XY: ({self._position.x}, {self._position.y})")
        self.setObsolete(False)
        return True


class UpdateProjectCommand(QUndoCommand):
    def __init__(
        self,
        document,
        project: CAProject,
        flags: ProjectPropertyFlags,
        parent: QUndoCommand | None,
    ):
        super().__init__(f"Project: {flags.name}", parent)
        self._document = document
        self._old_project = copy.copy(document.project)
        self._new_project = copy.copy(project)
        self._flags = flags

    def undo(self) -> None:
        self._document._set_project(self._old_project, self._flags)

    def redo(self) -> None:
        self._document._set_project(self._new_project, self._flags)


class UpdateStatesCommand(QUndoCommand):
    """Replaces states, overrides and transitions at once."""

    def __init__(
        self,
        document,
        states: list[str],
        overrides: dict[str, list[StateOverride]],
        transitions: list[StateTransition],
        text: str,
        parent: QUndoCommand | None,
    ):
        super().__init__(text, parent)
        self._document = document
        self._old = copy.deepcopy(
            (document.states, document.state_overrides, document.state_transitions)
        )
        self._new = copy.deepcopy((states, overrides, transitions))

    def undo(self) -> None:
        self._document._set_states(*copy.deepcopy(self._old))

    def redo(self) -> None:
        self._document._set_states(*copy.deepcopy(self._new))
