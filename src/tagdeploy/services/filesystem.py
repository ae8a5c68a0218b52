"""Filesystem helpers for tagdeploy."""

import logging
import os
import shutil
import tempfile


class FileSystemService:
    """Encapsulates file side effects in the deployment working tree."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def read_text(self, path: str) -> str:
        with open(path, "r", encoding="utf-8") as file_obj:
            return file_obj.read()

    def write_text(self, path: str, content: str):
        directory = os.path.dirname(path) or "."
        fd, temp_path = tempfile.mkstemp(prefix=".tagdeploy-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)
            # mkstemp creates 0600 files; keep the target readable for image builds.
            if os.path.exists(path):
                shutil.copymode(path, temp_path)
            else:
                os.chmod(temp_path, 0o644)
            os.replace(temp_path, path)
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)

    def remove_file(self, path: str) -> bool:
        try:
            os.remove(path)
        except FileNotFoundError:
            self.logger.debug("Already removed: %s", path)
            return False
        self.logger.debug("Removed file: %s", path)
        return True
