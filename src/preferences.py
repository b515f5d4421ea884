# castudio
# Copyright 2025 - Ricardo Quesada
import logging
import os.path

from PySide6.QtCore import QObject, QSettings, Signal

logger = logging.getLogger(__name__)


class Preferences(QObject):
    MAX_RECENT_FILES = 20

    DEFAULT_PROJECT_SIZE = (390, 844)
    DEFAULT_CA_FILENAME = "project.ca"
    DEFAULT_COMPRESSION_LEVEL = 6

    default_project_size_changed = Signal(tuple)
    ca_filename_changed = Signal(str)
    compression_level_changed = Signal(int)

    def __init__(self):
        super().__init__()
        self._settings = QSettings()
        self._recent_files = []

        self._load_recent_files()

    def get_default_project_size(self) -> tuple[float, float]:
        w = float(self._settings.value("project/width", defaultValue=self.DEFAULT_PROJECT_SIZE[0]))
        h = float(self._settings.value("project/height", defaultValue=self.DEFAULT_PROJECT_SIZE[1]))
        return w, h

    def set_default_project_size(self, size: tuple[float, float]) -> None:
        if size[0] <= 0 or size[1] <= 0:
            raise ValueError(f"Invalid project size: {size}")
        current = self.get_default_project_size()
        if current[0] != size[0] or current[1] != size[1]:
            self._settings.setValue("project/width", size[0])
            self._settings.setValue("project/height", size[1])
            self.default_project_size_changed.emit(size)

    def get_tendies_ca_filename(self) -> str:
        return str(self._settings.value("tendies/ca_filename", defaultValue=self.DEFAULT_CA_FILENAME))

    def set_tendies_ca_filename(self, filename: str) -> None:
        filename = filename.strip() or self.DEFAULT_CA_FILENAME
        current = self.get_tendies_ca_filename()
        if current != filename:
            self._settings.setValue("tendies/ca_filename", filename)
            self.ca_filename_changed.emit(filename)

    def get_compression_level(self) -> int:
        return int(self._settings.value("bundle/compression_level", defaultValue=self.DEFAULT_COMPRESSION_LEVEL))

    def set_compression_level(self, level: int) -> None:
        if level < 0 or level > 9:
            raise ValueError(f"Invalid compression level: {level}")
        current = self.get_compression_level()
        if current != level:
            self._settings.setValue("bundle/compression_level", level)
            self.compression_level_changed.emit(level)

    #
    # Recent projects. Files that no longer exist are dropped when loading.
    #
    def get_recent_files(self) -> list[str]:
        return list(self._recent_files)

    def add_recent_file(self, filename: str) -> None:
        """Moves filename to the top of the list. The oldest entries are dropped."""
        recent = [filename] + [f for f in self._recent_files if f != filename]
        self._recent_files = recent[: self.MAX_RECENT_FILES]
        self._save_recent_files()

    def remove_recent_file(self, filename: str) -> bool:
        if filename not in self._recent_files:
            return False
        self._recent_files.remove(filename)
        self._save_recent_files()
        return True

    def clear_recent_files(self) -> None:
        self._recent_files = []
        self._save_recent_files()

    def _save_recent_files(self) -> None:
        self._settings.setValue("files/recent_projects", self._recent_files)

    def _load_recent_files(self) -> None:
        value = self._settings.value("files/recent_projects", [])
        # QSettings returns a str when a single entry was stored
        if isinstance(value, str):
            value = [value]
        elif not isinstance(value, list):
            logger.warning(f"Ignoring invalid recent projects: {value!r}")
            value = []
        self._recent_files = [f for f in value if os.path.exists(f)]


_global_preferences = None


# Singleton
def get_global_preferences() -> Preferences:
    # Using a function to return the global instance so that we can delay
    # the creation of QSettings() after QCoreApplication.setOrganizationName() is called
    global _global_preferences
    if _global_preferences is None:
        _global_preferences = Preferences()
    return _global_preferences
