import base64
import io
import os
import plistlib
import sys
import unittest
import zipfile

# Ensure src is in path
sys.path.append(os.path.join(os.path.dirname(__file__), "../src"))

from ca_file import (
    ASSET_MANIFEST,
    CABundle,
    CAFileError,
    DualCABundle,
    extract_inline_assets,
    pack_ca,
    unpack_ca,
    unpack_dual_ca_zip,
)
from ca_states import StateOverride
from caml import CAML_NS
from geometry import Size, Vec2
from layer import GroupLayer, ImageLayer, ShapeLayer
from layer_tree import find_by_id
from project import CAProject

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"

SCENE = f"""<?xml version="1.0" encoding="UTF-8"?>
<caml xmlns="{CAML_NS}">
  <CALayer id="root" bounds="0 0 300 600" position="150 300">
    <sublayers>
      <CALayer id="pic" bounds="0 0 100 100" position="50 550">
        <contents type="CGImage"><CGImage src="assets/pic.png"/></contents>
      </CALayer>
    </sublayers>
  </CALayer>
</caml>"""


def _zip(files: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


class TestCAFile(unittest.TestCase):
    def setUp(self):
        self.image = ImageLayer(id="img", position=Vec2(10, 20), size=Size(100, 50), src="assets/pic.png")
        self.shape = ShapeLayer(id="shape", position=Vec2(0, 0), size=Size(50, 50), fill="#ff0000")
        root = GroupLayer(id="root", size=Size(390, 844), children=[self.image, self.shape])
        self.bundle = CABundle(
            project=CAProject(name="Wallpaper", width=390, height=844),
            root=root,
            assets={"pic.png": PNG_BYTES},
            states=["Locked", "Unlock"],
            state_overrides={"Locked": [StateOverride("img", "opacity", 0.5)]},
        )

    def test_pack_contents(self):
        data = pack_ca(self.bundle)
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = zf.namelist()
            self.assertIn("main.caml", names)
            self.assertIn("index.xml", names)
            self.assertIn("assetManifest.caml", names)
            self.assertIn("assets/pic.png", names)
            self.assertEqual(zf.read("assets/pic.png"), PNG_BYTES)
            self.assertEqual(zf.read("assetManifest.caml").decode("utf-8"), ASSET_MANIFEST)
            self.assertEqual(plistlib.loads(zf.read("index.xml")), {"rootDocument": "main.caml"})
            self.assertEqual(zf.getinfo("main.caml").compress_type, zipfile.ZIP_DEFLATED)
            self.assertTrue(zf.read("main.caml").startswith(b'<?xml version="1.0" encoding="UTF-8"?>'))

    def test_pack_str_asset(self):
        self.bundle.assets = {"note.svg": "<svg/>"}
        with zipfile.ZipFile(io.BytesIO(pack_ca(self.bundle))) as zf:
            self.assertEqual(zf.read("assets/note.svg"), b"<svg/>")

    def test_pack_invalid_asset(self):
        self.bundle.assets = {"bad.png": 42}
        with self.assertRaises(TypeError):
            pack_ca(self.bundle)

    def test_round_trip(self):
        bundle = unpack_ca(pack_ca(self.bundle))
        self.assertEqual(bundle.project.name, "Imported Project")
        self.assertEqual(bundle.project.width, 390)
        self.assertEqual(bundle.project.height, 844)
        self.assertEqual(bundle.assets, {"pic.png": PNG_BYTES})
        self.assertEqual(bundle.states, ["Locked", "Unlock"])

        image = find_by_id(bundle.root, "img")
        self.assertIsInstance(image, ImageLayer)
        self.assertEqual(image.src, "assets/pic.png")
        self.assertEqual(image.position, Vec2(10, 20))

        self.assertEqual(bundle.state_overrides["Locked"], [StateOverride("img", "opacity", 0.5)])
        self.assertEqual(bundle.state_overrides["Unlock"], [StateOverride("img", "opacity", 1)])

    def test_generated_spring_transitions(self):
        bundle = unpack_ca(pack_ca(self.bundle))
        pairs = [(t.from_state, t.to_state) for t in bundle.state_transitions]
        self.assertEqual(pairs, [("*", "Locked"), ("Locked", "*"), ("*", "Unlock"), ("Unlock", "*")])

        element = bundle.state_transitions[0].elements[0]
        self.assertEqual((element.target_id, element.key_path), ("img", "opacity"))
        anim = element.animation
        self.assertEqual(anim.type, "CASpringAnimation")
        self.assertEqual(anim.damping, 50)
        self.assertEqual(anim.mass, 2)
        self.assertEqual(anim.stiffness, 300)
        self.assertEqual(anim.velocity, 0)
        self.assertEqual(anim.duration, 0.8)
        self.assertEqual(anim.fill_mode, "backwards")
        self.assertEqual(anim.key_path, "opacity")
        # Nothing overridden in Unlock
        self.assertEqual(bundle.state_transitions[2].elements, [])

    def test_generated_transitions_overridden_states_first(self):
        self.bundle.states = ["Sleep", "Unlock", "Locked"]
        bundle = unpack_ca(pack_ca(self.bundle))
        pairs = [(t.from_state, t.to_state) for t in bundle.state_transitions]
        self.assertEqual(
            pairs,
            [("*", "Locked"), ("Locked", "*"), ("*", "Sleep"), ("Sleep", "*"), ("*", "Unlock"), ("Unlock", "*")],
        )
        self.assertEqual([len(t.elements) for t in bundle.state_transitions], [1, 1, 0, 0, 0, 0])

    def test_index_key_string_form(self):
        index = b"""<?xml version="1.0" encoding="UTF-8"?>
<plist version="1.0"><dict>
<key>documentWidth</key><real>300</real>
<key>rootDocument</key><string>scene.caml</string>
</dict></plist>"""
        data = _zip({"Index.xml": index, "other.caml": "<caml/>", "scene.caml": SCENE, "assets/pic.png": PNG_BYTES})
        bundle = unpack_ca(data)
        self.assertEqual(bundle.root.id, "root")
        self.assertEqual(bundle.project.width, 300)
        self.assertEqual(bundle.project.height, 600)
        self.assertEqual(find_by_id(bundle.root, "pic").position, Vec2(0, 0))

    def test_binary_index(self):
        index = plistlib.dumps({"rootDocument": "scene.caml"}, fmt=plistlib.FMT_BINARY)
        bundle = unpack_ca(_zip({"index.xml": index, "scene.caml": SCENE}))
        self.assertEqual(bundle.root.id, "root")

    def test_scene_matched_by_basename(self):
        index = plistlib.dumps({"rootDocument": "main.caml"})
        data = _zip({"Wallpaper.ca/index.xml": index, "Wallpaper.ca/main.caml": SCENE})
        bundle = unpack_ca(data)
        self.assertEqual(bundle.root.id, "root")

    def test_missing_index_falls_back_to_any_scene(self):
        bundle = unpack_ca(_zip({"scene.caml": SCENE, "assets/pic.png": PNG_BYTES}))
        self.assertEqual(bundle.root.id, "root")
        self.assertEqual(bundle.assets, {"pic.png": PNG_BYTES})

    def test_scene_not_found(self):
        index = plistlib.dumps({"rootDocument": "main.caml"})
        with self.assertRaises(CAFileError) as cm:
            unpack_ca(_zip({"index.xml": index, "assets/pic.png": PNG_BYTES}))
        self.assertIn("scene not found", str(cm.exception))

    def test_not_a_zip(self):
        with self.assertRaises(CAFileError):
            unpack_ca(b"this is not a zip file")

    def test_invalid_caml(self):
        with self.assertRaises(CAFileError) as cm:
            unpack_ca(_zip({"main.caml": "<caml><unclosed>"}))
        self.assertIn("Failed to parse CAML", str(cm.exception))

    def test_geometry_flipped_round_trip(self):
        self.bundle.project.geometry_flipped = 1
        bundle = unpack_ca(pack_ca(self.bundle))
        self.assertEqual(bundle.project.geometry_flipped, 1)
        self.assertEqual(bundle.root.geometry_flipped, 1)

    def test_dual_zip(self):
        floating = SCENE.replace('id="root" bounds="0 0 300 600"', 'id="fg" bounds="0 0 0 0" geometryFlipped="1"')
        index = plistlib.dumps({"rootDocument": "main.caml"})
        data = _zip(
            {
                "Wallpaper/background.CA/index.xml": index,
                "Wallpaper/background.CA/main.caml": SCENE,
                "Wallpaper/background.CA/assets/pic.png": PNG_BYTES,
                "Wallpaper/Floating.ca/main.caml": floating,
                "Wallpaper/Floating.ca/assets/fg.png": b"fg",
            }
        )
        dual = unpack_dual_ca_zip(data)
        self.assertIsInstance(dual, DualCABundle)
        self.assertEqual(dual.background.root.id, "root")
        self.assertEqual(dual.background.assets, {"pic.png": PNG_BYTES})
        self.assertEqual(dual.floating.root.id, "fg")
        self.assertEqual(dual.floating.assets, {"fg.png": b"fg"})
        # Floating root has no size
        self.assertEqual((dual.project.width, dual.project.height), (300, 600))
        self.assertEqual(dual.project.geometry_flipped, 1)

    def test_dual_zip_default_size(self):
        empty = f'<caml xmlns="{CAML_NS}"><CALayer id="root"/></caml>'
        dual = unpack_dual_ca_zip(_zip({"Background.ca/main.caml": empty, "Floating.ca/main.caml": empty}))
        self.assertEqual((dual.project.width, dual.project.height), (390, 844))
        self.assertEqual(dual.project.geometry_flipped, 0)

    def test_dual_zip_missing_folder(self):
        with self.assertRaises(CAFileError) as cm:
            unpack_dual_ca_zip(_zip({"Background.ca/main.caml": SCENE, "Other.ca/main.caml": SCENE}))
        self.assertIn("Floating.ca", str(cm.exception))
        with self.assertRaises(CAFileError):
            unpack_dual_ca_zip(b"this is not a zip file")

    def test_inline_assets(self):
        payload = base64.b64encode(PNG_BYTES).decode("ascii")
        scene = SCENE.replace("assets/pic.png", f"data:image/png;base64,{payload}")
        bundle = unpack_ca(_zip({"main.caml": scene}))
        self.assertEqual(len(bundle.assets), 1)
        name, data = next(iter(bundle.assets.items()))
        self.assertTrue(name.startswith("inline_"))
        self.assertTrue(name.endswith(".png"))
        self.assertEqual(data, PNG_BYTES)
        self.assertEqual(find_by_id(bundle.root, "pic").src, f"assets/{name}")

    def test_extract_inline_assets_untouched(self):
        xml, assets = extract_inline_assets(SCENE)
        self.assertIs(xml, SCENE)
        self.assertEqual(assets, {})

        xml, assets = extract_inline_assets("not xml")
        self.assertEqual(xml, "not xml")
        self.assertEqual(assets, {})


if __name__ == "__main__":
    unittest.main()
