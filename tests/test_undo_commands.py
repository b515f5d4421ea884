import os
import sys
import unittest
from unittest import mock

# Ensure src is in path
sys.path.append(os.path.join(os.path.dirname(__file__), "../src"))

import preferences
from ca_states import StateOverride
from document import CADocument
from geometry import Size, Vec2
from layer import ShapeLayer
from layer_tree import find_by_id, insert_into_group, remove_from_tree
from project import CAProject, ProjectPropertyFlags
from undo_commands import (
    AddLayerCommand,
    DeleteLayerCommand,
    UpdateLayerCommand,
    UpdateLayerPositionCommand,
    UpdateProjectCommand,
    UpdateStatesCommand,
)


class TestUndoCommands(unittest.TestCase):
    def setUp(self):
        # Don't touch the user's settings
        patcher = mock.patch("preferences.QSettings")
        settings = patcher.start().return_value
        settings.value.side_effect = lambda key, defaultValue=None: defaultValue
        self.addCleanup(patcher.stop)
        preferences._global_preferences = None
        self.addCleanup(setattr, preferences, "_global_preferences", None)

        self.document = CADocument(CAProject(width=390, height=844))
        self.layer = ShapeLayer(id="shape", name="Undo Layer", size=Size(10, 10))

    def test_add_layer_command(self):
        _, new_root = insert_into_group(self.document.root, self.document.root.id, self.layer)
        cmd = AddLayerCommand(self.document, new_root, self.layer, None)

        # Nothing happens until redo() is called
        self.assertEqual(len(self.document.root.children), 0)

        cmd.redo()
        self.assertEqual(self.document.root.children, [self.layer])
        self.assertEqual(self.document.selected_layer_id, "shape")

        cmd.undo()
        self.assertEqual(len(self.document.root.children), 0)
        self.assertIsNone(self.document.selected_layer_id)

        cmd.redo()
        self.assertEqual(len(self.document.root.children), 1)

    def test_delete_layer_command(self):
        self.document.add_layer(self.layer)
        removed, new_root = remove_from_tree(self.document.root, "shape")
        cmd = DeleteLayerCommand(self.document, new_root, removed, None)

        cmd.redo()
        self.assertEqual(len(self.document.root.children), 0)

        cmd.undo()
        self.assertEqual(self.document.root.children, [self.layer])

    def test_update_layer_command(self):
        self.document.add_layer(self.layer)
        changed = []
        self.document.layer_changed.connect(changed.append)

        cmd = UpdateLayerCommand(self.document, self.layer, {"name": "Renamed Layer", "opacity": 0.5}, None)
        cmd.redo()
        layer = self.document.get_layer("shape")
        self.assertEqual(layer.name, "Renamed Layer")
        self.assertEqual(layer.opacity, 0.5)

        cmd.undo()
        layer = self.document.get_layer("shape")
        self.assertEqual(layer.name, "Undo Layer")
        self.assertIsNone(layer.opacity)
        self.assertEqual([c.name for c in changed], ["Renamed Layer", "Undo Layer"])

    def test_position_commands_merge(self):
        self.document.add_layer(self.layer)
        stack = self.document.undo_stack
        count = stack.count()

        stack.push(UpdateLayerPositionCommand(self.document, self.layer, Vec2(5, 0), None))
        layer = self.document.get_layer("shape")
        stack.push(UpdateLayerPositionCommand(self.document, layer, Vec2(5, 7), None))

        self.assertEqual(stack.count(), count + 1)
        self.assertEqual(self.document.get_layer("shape").position, Vec2(5, 7))

        stack.undo()
        self.assertEqual(self.document.get_layer("shape").position, Vec2(0, 0))

    def test_position_commands_different_layers(self):
        other = ShapeLayer(id="other")
        self.document.add_layer(self.layer)
        self.document.add_layer(other)
        stack = self.document.undo_stack
        count = stack.count()

        stack.push(UpdateLayerPositionCommand(self.document, self.layer, Vec2(1, 1), None))
        stack.push(UpdateLayerPositionCommand(self.document, other, Vec2(2, 2), None))
        self.assertEqual(stack.count(), count + 2)

    def test_update_project_command(self):
        emitted = []
        self.document.project_property_changed.connect(lambda flags, project: emitted.append(flags))
        project = CAProject(id=self.document.project.id, width=200, height=400)

        cmd = UpdateProjectCommand(self.document, project, ProjectPropertyFlags.SIZE, None)
        cmd.redo()
        self.assertEqual(self.document.project.width, 200)
        self.assertEqual(self.document.root.size, Size(200, 400))

        cmd.undo()
        self.assertEqual(self.document.project.width, 390)
        self.assertEqual(self.document.root.size, Size(390, 844))
        self.assertEqual(emitted, [ProjectPropertyFlags.SIZE, ProjectPropertyFlags.SIZE])

    def test_update_states_command(self):
        self.document.add_layer(self.layer)
        overrides = {"Locked": [StateOverride("shape", "opacity", 0)]}
        cmd = UpdateStatesCommand(self.document, ["Locked"], overrides, [], "States", None)

        # The command keeps its own copy
        overrides["Locked"].clear()

        cmd.redo()
        self.assertEqual(self.document.states, ["Locked"])
        self.assertEqual(self.document.state_overrides["Locked"], [StateOverride("shape", "opacity", 0)])

        cmd.undo()
        self.assertEqual(self.document.states, ["Locked", "Unlock", "Sleep"])
        self.assertEqual(self.document.state_overrides, {})

    def test_layer_lookup_after_merge(self):
        self.document.add_layer(self.layer)
        stack = self.document.undo_stack
        stack.push(UpdateLayerPositionCommand(self.document, self.layer, Vec2(3, 3), None))
        stack.push(UpdateLayerPositionCommand(self.document, self.document.get_layer("shape"), Vec2(4, 4), None))
        stack.undo()
        stack.redo()
        self.assertEqual(find_by_id(self.document.root, "shape").position, Vec2(4, 4))


if __name__ == "__main__":
    unittest.main()
