import io
import os
import plistlib
import sys
import unittest
import zipfile

# Ensure src is in path
sys.path.append(os.path.join(os.path.dirname(__file__), "../src"))

from tendies import (
    TENDIES_WALLPAPER_DIR,
    TendiesError,
    build_tendies,
    build_tendies_from_bundle,
    patch_wallpaper_plist,
)

WALLPAPER = {
    "assets": {
        "lockAndHome": {
            "default": {
                "foregroundAnimationFileName": "old.ca",
                "backgroundAnimationFileName": "bg.ca",
            }
        }
    },
    "version": 1,
}

REGEX_ONLY_PLIST = b"""<?xml version="1.0" encoding="UTF-8"?>
<plist version="1.0"><dict>
<key>foregroundAnimationFileName</key>
<string>old.ca</string>
</dict></plist>"""


def _zip(files: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def _read_zip(data: bytes) -> dict:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def _foreground(data: bytes) -> str:
    return plistlib.loads(data)["assets"]["lockAndHome"]["default"]["foregroundAnimationFileName"]


class TestTendies(unittest.TestCase):
    def test_patch_xml_plist(self):
        data = plistlib.dumps(WALLPAPER, fmt=plistlib.FMT_XML)
        patched = patch_wallpaper_plist(data, "new.ca")
        self.assertTrue(patched.startswith(b"<?xml"))
        plist = plistlib.loads(patched)
        self.assertEqual(_foreground(patched), "new.ca")
        # Everything else is preserved
        self.assertEqual(plist["assets"]["lockAndHome"]["default"]["backgroundAnimationFileName"], "bg.ca")
        self.assertEqual(plist["version"], 1)

    def test_patch_binary_plist(self):
        data = plistlib.dumps(WALLPAPER, fmt=plistlib.FMT_BINARY)
        patched = patch_wallpaper_plist(data, "new.ca")
        self.assertTrue(patched.startswith(b"bplist00"))
        self.assertEqual(_foreground(patched), "new.ca")

    def test_patch_regex_fallback(self):
        # Valid plist, but the key is not at the expected path
        patched = patch_wallpaper_plist(REGEX_ONLY_PLIST, "a&b.ca")
        self.assertIn(b"<string>a&amp;b.ca</string>", patched)
        self.assertNotIn(b"old.ca", patched)

    def test_patch_regex_fallback_invalid_xml(self):
        data = b"<plist><key>foregroundAnimationFileName</key> <string>old.ca</string><broken"
        patched = patch_wallpaper_plist(data, "new.ca")
        self.assertIn(b"<string>new.ca</string>", patched)

    def test_patch_fails(self):
        data = plistlib.dumps({"something": "else"})
        self.assertIsNone(patch_wallpaper_plist(data, "new.ca"))
        self.assertIsNone(patch_wallpaper_plist(b"garbage", "new.ca"))

    def test_build_tendies(self):
        plist_path = TENDIES_WALLPAPER_DIR + "Wallpaper.plist"
        template = _zip(
            {
                plist_path: plistlib.dumps(WALLPAPER),
                TENDIES_WALLPAPER_DIR + "old.ca": b"old",
                "descriptors/readme.txt": b"keep me",
            }
        )
        files = _read_zip(build_tendies(template, b"CA DATA", "new.ca"))
        self.assertEqual(files[TENDIES_WALLPAPER_DIR + "new.ca"], b"CA DATA")
        self.assertEqual(files["descriptors/readme.txt"], b"keep me")
        self.assertEqual(files[TENDIES_WALLPAPER_DIR + "old.ca"], b"old")
        self.assertEqual(_foreground(files[plist_path]), "new.ca")

    def test_build_tendies_default_filename(self):
        template = _zip({TENDIES_WALLPAPER_DIR + "Wallpaper.plist": plistlib.dumps(WALLPAPER)})
        files = _read_zip(build_tendies(template, b"CA", "  "))
        self.assertIn(TENDIES_WALLPAPER_DIR + "project.ca", files)
        self.assertEqual(_foreground(files[TENDIES_WALLPAPER_DIR + "Wallpaper.plist"]), "project.ca")

    def test_build_tendies_plist_elsewhere(self):
        template = _zip({"other/Wallpaper.plist": plistlib.dumps(WALLPAPER)})
        files = _read_zip(build_tendies(template, b"CA", "new.ca"))
        self.assertEqual(_foreground(files["other/Wallpaper.plist"]), "new.ca")

    def test_build_tendies_without_plist(self):
        template = _zip({"descriptors/readme.txt": b"hello"})
        files = _read_zip(build_tendies(template, b"CA", "new.ca"))
        self.assertEqual(files[TENDIES_WALLPAPER_DIR + "new.ca"], b"CA")
        self.assertEqual(files["descriptors/readme.txt"], b"hello")

    def test_build_tendies_unpatchable_plist(self):
        plist_path = TENDIES_WALLPAPER_DIR + "Wallpaper.plist"
        original = plistlib.dumps({"something": "else"})
        files = _read_zip(build_tendies(_zip({plist_path: original}), b"CA", "new.ca"))
        self.assertEqual(files[plist_path], original)

    def test_invalid_template(self):
        with self.assertRaises(TendiesError):
            build_tendies(b"not a zip", b"CA")

    def test_build_from_bundle(self):
        folder = "descriptors/X/versions/0/contents/Wallpaper.wallpaper"
        template = _zip({folder + "/Wallpaper.plist": plistlib.dumps(WALLPAPER)})
        bundle = _zip({"main.caml": b"<caml/>", "index.xml": b"<plist/>", "assets/a.png": b"png"})

        files = _read_zip(build_tendies_from_bundle(template, bundle, folder + "/custom.ca/"))
        self.assertEqual(files[folder + "/custom.ca/main.caml"], b"<caml/>")
        self.assertEqual(files[folder + "/custom.ca/index.xml"], b"<plist/>")
        self.assertEqual(files[folder + "/custom.ca/assets/a.png"], b"png")
        self.assertEqual(_foreground(files[folder + "/Wallpaper.plist"]), "custom.ca")

    def test_build_from_invalid_bundle(self):
        template = _zip({"Wallpaper.plist": plistlib.dumps(WALLPAPER)})
        with self.assertRaises(TendiesError):
            build_tendies_from_bundle(template, b"nope", "x.ca")


if __name__ == "__main__":
    unittest.main()
