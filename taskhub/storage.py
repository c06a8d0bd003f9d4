"""Per-identity binary object storage (avatars).

Objects live under ``<root>/<owner_id>/<name>``. Any signed-in identity may
read; only the owner may write into its namespace.
"""
import logging
import re
from pathlib import Path
from typing import Optional, Union

from taskhub.errors import AuthRequired, InvalidInput, NotFound, PermissionDenied
from taskhub.rules import Action, can_perform

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
MAX_OBJECT_SIZE = 5 * 1024 * 1024


class ObjectStorage:
    def __init__(self, root: Union[str, Path], base_url: str = "/storage"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, owner_id: str, name: str) -> Path:
        if not name or not _SAFE_NAME.match(name) or name.startswith("."):
            raise InvalidInput("Invalid file name")
        if not owner_id or not _SAFE_NAME.match(owner_id) or owner_id.startswith("."):
            raise InvalidInput("Invalid owner")
        path = self.root / owner_id / name
        # objects never leave their owner's directory
        if not path.resolve().is_relative_to((self.root / owner_id).resolve()):
            raise InvalidInput("Invalid file name")
        return path

    def url_for(self, owner_id: str, name: str) -> str:
        return f"{self.base_url}/{owner_id}/{name}"

    def upload(self, actor: Optional[str], owner_id: str, name: str, data: bytes) -> str:
        if not actor:
            raise AuthRequired("You must be logged in to upload files")
        if not can_perform(Action.STORAGE_WRITE, actor, {"owner_id": owner_id}):
            raise PermissionDenied("You can only upload into your own storage")
        if len(data) > MAX_OBJECT_SIZE:
            raise InvalidInput("File is too large")

        path = self._path(owner_id, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("Stored object owner=%s name=%s size=%d", owner_id, name, len(data))
        return self.url_for(owner_id, name)

    def read(self, actor: Optional[str], owner_id: str, name: str) -> bytes:
        if not can_perform(Action.STORAGE_READ, actor):
            raise AuthRequired("You must be logged in to read files")
        path = self._path(owner_id, name)
        if not path.is_file():
            raise NotFound("File not found")
        return path.read_bytes()
