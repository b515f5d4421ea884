# castudio
# Copyright 2025 - Ricardo Quesada

import base64
import copy
import dataclasses
import logging
import os.path
from typing import Self

import toml
from PySide6.QtCore import QObject, Signal
from PySide6.QtGui import QImage, QUndoStack

import ca_states
from ca_file import CABundle, CAFileError, pack_ca, unpack_ca
from ca_states import DEFAULT_STATE_NAMES, StateOverride, StateTransition, is_base_state
from file_utils import sanitize_filename
from geometry import Size, Vec2
from layer import GroupLayer, ImageLayer, Layer
from layer_tree import (
    bring_forward,
    clone_layer_deep,
    contains_id,
    find_by_id,
    find_parent,
    insert_into_group,
    iter_layers,
    move_before,
    move_into_group,
    remove_from_tree,
    send_backward,
    update_in_tree,
    wrap_as_group,
)
from preferences import get_global_preferences
from project import CAProject, ProjectPropertyFlags
from tendies import TENDIES_WALLPAPER_DIR, TendiesError, build_tendies, build_tendies_from_bundle
from undo_commands import (
    AddLayerCommand,
    DeleteLayerCommand,
    ReplaceTreeCommand,
    UpdateLayerCommand,
    UpdateLayerPositionCommand,
    UpdateProjectCommand,
    UpdateStatesCommand,
)

logger = logging.getLogger(__name__)


class CADocument(QObject):
    """
    The editing session: project, layer tree, assets and states.

    Public methods push undo commands. The private ones (prefixed with "_")
    are called by the undo commands and emit the signals.
    """

    # Triggered when a layer is added.
    layer_added = Signal(Layer)
    # Triggered when a layer is removed.
    layer_removed = Signal(Layer)
    # Triggered when the properties of a layer (e.g: position) change.
    layer_changed = Signal(Layer)
    # Triggered every time the root changes. Emitted after the more specific ones.
    tree_changed = Signal()
    # Triggered when CAProject properties (e.g: size) change.
    project_property_changed = Signal(ProjectPropertyFlags, CAProject)
    # Triggered when states, state overrides or transitions change.
    states_changed = Signal()

    def __init__(self, project: CAProject | None = None):
        super().__init__()
        prefs = get_global_preferences()
        if project is None:
            w, h = prefs.get_default_project_size()
            project = CAProject(width=w, height=h)
        self._project = project
        self._project_filename = None
        self._root: Layer = GroupLayer.create_root(project.width, project.height)
        self._assets: dict[str, bytes] = {}
        self._states: list[str] = list(DEFAULT_STATE_NAMES)
        self._state_overrides: dict[str, list[StateOverride]] = {}
        self._state_transitions: list[StateTransition] = []
        self._selected_layer_id: str | None = None

        self._undo_stack = QUndoStack()

    #
    # Persistence
    #
    @classmethod
    def from_dict(cls, d: dict) -> Self:
        doc = cls(CAProject.from_dict(d["project"]))
        layers = d["layers"]

        def build(layer_id: str) -> Layer:
            ld = layers[layer_id]
            children = [build(child_id) for child_id in ld.get("children", [])]
            layer = Layer.from_dict(ld, children)
            if layer.id != layer_id:
                logger.error(f"Dictionary key {layer_id} does not match layer id {layer.id}")
            return layer

        doc._root = build(d["root_id"])
        doc._assets = {a["name"]: base64.b64decode(a["data"]) for a in d.get("assets", [])}
        doc._states = list(d.get("states", DEFAULT_STATE_NAMES))
        doc._state_overrides = ca_states.overrides_from_list(d.get("state_overrides", []), doc._states)
        doc._state_transitions = ca_states.transitions_from_lists(
            d.get("transitions", []), d.get("transition_elements", [])
        )
        selected = d.get("selected_layer_id")
        if selected and contains_id(doc._root, selected):
            doc._selected_layer_id = selected
        return doc

    def to_dict(self) -> dict:
        transitions, elements = ca_states.transitions_to_lists(self._state_transitions)
        d = {
            "project": self._project.to_dict(),
            "root_id": self._root.id,
            "layers": {layer.id: layer.to_dict() for layer in iter_layers(self._root)},
            "assets": [
                {"name": name, "data": base64.b64encode(data).decode("ascii")}
                for name, data in self._assets.items()
            ],
            "states": list(self._states),
            "state_overrides": ca_states.overrides_to_list(self._state_overrides),
            "transitions": transitions,
            "transition_elements": elements,
        }
        if self._selected_layer_id is not None:
            d["selected_layer_id"] = self._selected_layer_id
        return d

    @classmethod
    def load_from_filename(cls, filename: str) -> Self | None:
        logger.info(f"Loading project from filename {filename}")
        try:
            with open(filename, "r", encoding="utf-8") as f:
                d = toml.load(f)
                if not d:
                    logger.error(f"Failed to load project from {filename}")
                    return None
                doc = cls.from_dict(d)
                doc._project_filename = filename
            get_global_preferences().add_recent_file(os.path.abspath(filename))
            return doc
        except FileNotFoundError as e:
            logger.error(f"Could not load file from {filename}, error: {e}")
            get_global_preferences().remove_recent_file(os.path.abspath(filename))
            return None
        except (toml.TomlDecodeError, KeyError) as e:
            logger.error(f"Invalid project file {filename}, error: {e}")
            return None

    def save_to_filename(self, filename: str) -> None:
        logger.info(f"Saving project to filename {filename}")
        if filename is None:
            return
        self._project_filename = filename

        d = self.to_dict()

        try:
            with open(filename, "w", encoding="utf-8") as f:
                toml.dump(d, f)
                self._undo_stack.setClean()
            get_global_preferences().add_recent_file(os.path.abspath(filename))
        except FileNotFoundError as e:
            logger.error(f"Could not save file to {filename}, error: {e}")
        except Exception:
            logger.exception("An unexpected error occurred:")

    #
    # Bundles
    #
    @classmethod
    def from_bundle(cls, bundle: CABundle) -> Self:
        doc = cls(copy.copy(bundle.project))
        doc._root = bundle.root
        doc._assets = dict(bundle.assets)
        doc._states = list(bundle.states)
        doc._state_overrides = copy.deepcopy(bundle.state_overrides)
        doc._state_transitions = copy.deepcopy(bundle.state_transitions)
        return doc

    def to_bundle(self) -> CABundle:
        return CABundle(
            project=copy.copy(self._project),
            root=self._root,
            assets=dict(self._assets),
            states=list(self._states),
            state_overrides=copy.deepcopy(self._state_overrides),
            state_transitions=copy.deepcopy(self._state_transitions),
        )

    @classmethod
    def import_ca(cls, filename: str) -> Self | None:
        logger.info(f"Importing CA file {filename}")
        try:
            with open(filename, "rb") as f:
                bundle = unpack_ca(f.read())
        except FileNotFoundError as e:
            logger.error(f"Could not import file from {filename}, error: {e}")
            return None
        except CAFileError as e:
            logger.error(f"Invalid CA file {filename}, error: {e}")
            return None
        bundle.project.name = os.path.splitext(os.path.basename(filename))[0] or bundle.project.name
        return cls.from_bundle(bundle)

    def export_ca(self, filename: str) -> bytes:
        level = get_global_preferences().get_compression_level()
        data = pack_ca(self.to_bundle(), compression_level=level)
        with open(filename, "wb") as f:
            f.write(data)
        logger.info(f"Exported CA file to {filename}")
        return data

    def export_tendies(
        self,
        filename: str,
        template_filename: str,
        ca_filename: str | None = None,
        as_bundle: bool = False,
    ) -> bool:
        """
        Exports the document as a wallpaper package.

        Args:
            filename: the .tendies file to create.
            template_filename: the template zip file.
            ca_filename: name of the .ca inside the package. Defaults to the
                one in the preferences.
            as_bundle: expands the .ca into a folder, instead of storing the
                .ca file as is.
        """
        if ca_filename is None:
            ca_filename = get_global_preferences().get_tendies_ca_filename()
        level = get_global_preferences().get_compression_level()
        ca_data = pack_ca(self.to_bundle(), compression_level=level)
        try:
            with open(template_filename, "rb") as f:
                template = f.read()
            if as_bundle:
                data = build_tendies_from_bundle(template, ca_data, TENDIES_WALLPAPER_DIR + ca_filename)
            else:
                data = build_tendies(template, ca_data, ca_filename)
        except FileNotFoundError as e:
            logger.error(f"Could not read template {template_filename}, error: {e}")
            return False
        except TendiesError as e:
            logger.error(f"Could not build tendies file, error: {e}")
            return False
        with open(filename, "wb") as f:
            f.write(data)
        logger.info(f"Exported tendies file to {filename}")
        return True

    #
    # Layers
    #
    def add_layer(self, layer: Layer, parent_id: str | None = None, index: int | None = None) -> bool:
        for new_layer in iter_layers(layer):
            if contains_id(self._root, new_layer.id):
                logger.error(f"Cannot add layer {layer.name}. Layer id {new_layer.id} already exists")
                return False
        if parent_id is None:
            parent_id = self._root.id
        inserted, new_root = insert_into_group(self._root, parent_id, layer, index)
        if not inserted:
            logger.error(f"Cannot add layer {layer.name}. Group {parent_id} not found")
            return False
        self._undo_stack.push(AddLayerCommand(self, new_root, layer, None))
        return True

    def add_image_layer(self, filename: str, parent_id: str | None = None) -> ImageLayer | None:
        """Adds an image file as an asset and an ImageLayer that displays it."""
        image = QImage(filename)
        if image.isNull():
            logger.error(f"Could not load image from {filename}")
            return None
        with open(filename, "rb") as f:
            data = f.read()

        asset_name = sanitize_filename(os.path.basename(filename)) or "image.png"
        stem, ext = os.path.splitext(asset_name)
        counter = 0
        while asset_name in self._assets and self._assets[asset_name] != data:
            counter += 1
            asset_name = f"{stem}_{counter}{ext}"
        self._assets[asset_name] = data

        layer = ImageLayer(
            name=os.path.splitext(os.path.basename(filename))[0],
            src=f"assets/{asset_name}",
            size=Size(image.width(), image.height()),
        )
        if not self.add_layer(layer, parent_id):
            return None
        return layer

    def delete_layer(self, layer_id: str) -> None:
        if layer_id == self._root.id:
            logger.warning("Cannot delete the root layer")
            return
        removed, new_root = remove_from_tree(self._root, layer_id)
        if removed is None:
            logger.warning(f"Failed to delete layer, not found: {layer_id}")
            return
        self._undo_stack.push(DeleteLayerCommand(self, new_root, removed, None))

    def update_layer(self, layer_id: str, **changes) -> None:
        layer = find_by_id(self._root, layer_id)
        if layer is None:
            logger.error(f"Cannot update layer. Layer {layer_id} not found")
            return
        valid = {f.name for f in dataclasses.fields(layer)} - {"id", "children"}
        for name in changes:
            if name not in valid:
                raise ValueError(f"Invalid property for {layer.kind} layer: {name}")
        changes = {k: v for k, v in changes.items() if getattr(layer, k) != v}
        if not changes:
            return
        if "size" in changes and layer_id == self._root.id:
            logger.warning("Root size follows the project size, use set_project_size()")
            del changes["size"]
            if not changes:
                return
        if list(changes) == ["position"]:
            self._undo_stack.push(UpdateLayerPositionCommand(self, layer, changes["position"], None))
        else:
            self._undo_stack.push(UpdateLayerCommand(self, layer, changes, None))

    def set_layer_position(self, layer_id: str, position: Vec2) -> None:
        self.update_layer(layer_id, position=position)

    def duplicate_layer(self, layer_id: str) -> str | None:
        """Inserts a deep copy right above the layer. Returns the id of the copy."""
        parent = find_parent(self._root, layer_id)
        if parent is None:
            logger.warning(f"Cannot duplicate layer {layer_id}")
            return None
        index = next(i for i, c in enumerate(parent.children) if c.id == layer_id)
        clone = clone_layer_deep(parent.children[index])
        inserted, new_root = insert_into_group(self._root, parent.id, clone, index + 1)
        if not inserted:
            return None
        self._undo_stack.push(AddLayerCommand(self, new_root, clone, None))
        return clone.id

    def wrap_layer_in_group(self, layer_id: str) -> str | None:
        new_root, group_id = wrap_as_group(self._root, layer_id)
        if group_id is None:
            logger.warning(f"Cannot wrap layer {layer_id}, not found")
            return None
        if new_root is not self._root:
            self._undo_stack.push(ReplaceTreeCommand(self, new_root, "Wrap in Group", None))
        return group_id

    def move_layer(self, layer_id: str, group_id: str, index: int | None = None) -> bool:
        moved, new_root = move_into_group(self._root, layer_id, group_id, index)
        if not moved:
            logger.warning(f"Cannot move layer {layer_id} into {group_id}")
            return False
        self._undo_stack.push(ReplaceTreeCommand(self, new_root, "Move Layer", None))
        return True

    def move_layer_before(self, layer_id: str, target_id: str) -> bool:
        moved, new_root = move_before(self._root, layer_id, target_id)
        if not moved:
            logger.warning(f"Cannot move layer {layer_id} before {target_id}")
            return False
        self._undo_stack.push(ReplaceTreeCommand(self, new_root, "Reorder Layers", None))
        return True

    def bring_layer_forward(self, layer_id: str) -> bool:
        moved, new_root = bring_forward(self._root, layer_id)
        if moved:
            self._undo_stack.push(ReplaceTreeCommand(self, new_root, "Bring Forward", None))
        return moved

    def send_layer_backward(self, layer_id: str) -> bool:
        moved, new_root = send_backward(self._root, layer_id)
        if moved:
            self._undo_stack.push(ReplaceTreeCommand(self, new_root, "Send Backward", None))
        return moved

    #
    # Project
    #
    def set_project_name(self, name: str) -> None:
        if name != self._project.name:
            project = dataclasses.replace(self._project, name=name)
            self._undo_stack.push(UpdateProjectCommand(self, project, ProjectPropertyFlags.NAME, None))

    def set_project_size(self, size: tuple[float, float]) -> None:
        if size[0] <= 0 or size[1] <= 0:
            raise ValueError(f"Invalid project size: {size}")
        if (self._project.width, self._project.height) != tuple(size):
            project = dataclasses.replace(self._project, width=size[0], height=size[1])
            self._undo_stack.push(UpdateProjectCommand(self, project, ProjectPropertyFlags.SIZE, None))

    def set_project_background(self, color: str | None) -> None:
        if color != self._project.background:
            project = dataclasses.replace(self._project, background=color)
            self._undo_stack.push(
                UpdateProjectCommand(self, project, ProjectPropertyFlags.BACKGROUND, None)
            )

    def set_project_geometry_flipped(self, flipped: bool) -> None:
        value = 1 if flipped else 0
        if value != self._project.geometry_flipped:
            project = dataclasses.replace(self._project, geometry_flipped=value)
            self._undo_stack.push(UpdateProjectCommand(self, project, ProjectPropertyFlags.GEOMETRY, None))

    #
    # States
    #
    def _push_states(self, states, overrides, transitions, text: str) -> None:
        self._undo_stack.push(UpdateStatesCommand(self, states, overrides, transitions, text, None))

    def add_state(self, name: str) -> bool:
        name = name.strip()
        if not name or is_base_state(name) or name in self._states:
            logger.warning(f"Invalid state name: '{name}'")
            return False
        self._push_states(
            self._states + [name], self._state_overrides, self._state_transitions, f"Add State: {name}"
        )
        return True

    def remove_state(self, name: str) -> bool:
        if name not in self._states:
            logger.warning(f"Cannot remove state '{name}', not found")
            return False
        states = [s for s in self._states if s != name]
        overrides = {k: v for k, v in self._state_overrides.items() if k != name}
        transitions = [
            t for t in self._state_transitions if t.from_state != name and t.to_state != name
        ]
        self._push_states(states, overrides, transitions, f"Remove State: {name}")
        return True

    def rename_state(self, old_name: str, new_name: str) -> bool:
        new_name = new_name.strip()
        if old_name not in self._states:
            logger.warning(f"Cannot rename state '{old_name}', not found")
            return False
        if not new_name or is_base_state(new_name) or new_name in self._states:
            logger.warning(f"Invalid state name: '{new_name}'")
            return False
        states = [new_name if s == old_name else s for s in self._states]
        overrides = {(new_name if k == old_name else k): v for k, v in self._state_overrides.items()}
        transitions = copy.deepcopy(self._state_transitions)
        for t in transitions:
            if t.from_state == old_name:
                t.from_state = new_name
            if t.to_state == old_name:
                t.to_state = new_name
        self._push_states(states, overrides, transitions, f"Rename State: {old_name} -> {new_name}")
        return True

    def set_state_override(self, state: str, target_id: str, key_path: str, value: float | int | str) -> bool:
        if state not in self._states:
            logger.error(f"Cannot set override. State '{state}' not found")
            return False
        if not contains_id(self._root, target_id):
            logger.error(f"Cannot set override. Layer {target_id} not found")
            return False
        overrides = copy.deepcopy(self._state_overrides)
        state_overrides = overrides.setdefault(state, [])
        for ov in state_overrides:
            if ov.target_id == target_id and ov.key_path == key_path:
                ov.value = value
                break
        else:
            state_overrides.append(StateOverride(target_id, key_path, value))
        self._push_states(
            self._states, overrides, self._state_transitions, f"{state}: {key_path} = {value}"
        )
        return True

    def remove_state_override(self, state: str, target_id: str, key_path: str) -> bool:
        current = self._state_overrides.get(state, [])
        remaining = [ov for ov in current if not (ov.target_id == target_id and ov.key_path == key_path)]
        if len(remaining) == len(current):
            return False
        overrides = dict(self._state_overrides)
        overrides[state] = remaining
        self._push_states(self._states, overrides, self._state_transitions, f"{state}: remove {key_path}")
        return True

    def set_transitions(self, transitions: list[StateTransition]) -> None:
        self._push_states(self._states, self._state_overrides, list(transitions), "Update Transitions")

    #
    # Properties
    #
    @property
    def undo_stack(self) -> QUndoStack:
        return self._undo_stack

    @property
    def project(self) -> CAProject:
        return self._project

    @property
    def project_filename(self) -> str | None:
        return self._project_filename

    @property
    def root(self) -> Layer:
        return self._root

    @property
    def assets(self) -> dict[str, bytes]:
        return self._assets

    @property
    def states(self) -> list[str]:
        return self._states

    @property
    def state_overrides(self) -> dict[str, list[StateOverride]]:
        return self._state_overrides

    @property
    def state_transitions(self) -> list[StateTransition]:
        return self._state_transitions

    @property
    def selected_layer(self) -> Layer | None:
        return find_by_id(self._root, self._selected_layer_id)

    @property
    def selected_layer_id(self) -> str | None:
        return self._selected_layer_id

    @selected_layer_id.setter
    def selected_layer_id(self, layer_id: str | None):
        if layer_id is not None and not contains_id(self._root, layer_id):
            logger.error(f"Failed to change selected_layer_id. Layer '{layer_id}' not found")
            return
        self._selected_layer_id = layer_id

    def get_layer(self, layer_id: str) -> Layer | None:
        return find_by_id(self._root, layer_id)

    #
    # Private methods, mostly to be called by Undo Commands
    #
    def _set_root(
        self,
        root: Layer,
        added: Layer | None = None,
        removed: Layer | None = None,
        changed_id: str | None = None,
    ) -> None:
        self._root = root
        if added is not None:
            self._selected_layer_id = added.id
            self.layer_added.emit(added)
        if removed is not None:
            if self._selected_layer_id is not None and not contains_id(root, self._selected_layer_id):
                self._selected_layer_id = None
            self.layer_removed.emit(removed)
        if changed_id is not None:
            changed = find_by_id(root, changed_id)
            if changed is not None:
                self.layer_changed.emit(changed)
        if self._selected_layer_id is not None and not contains_id(root, self._selected_layer_id):
            self._selected_layer_id = None
        self.tree_changed.emit()

    def _set_project(self, project: CAProject, flags: ProjectPropertyFlags) -> None:
        self._project = project
        if flags & ProjectPropertyFlags.SIZE:
            self._root = update_in_tree(self._root, self._root.id, size=Size(project.width, project.height))
            self.tree_changed.emit()
        self.project_property_changed.emit(flags, project)

    def _set_states(
        self,
        states: list[str],
        overrides: dict[str, list[StateOverride]],
        transitions: list[StateTransition],
    ) -> None:
        self._states = states
        self._state_overrides = overrides
        self._state_transitions = transitions
        self.states_changed.emit()
