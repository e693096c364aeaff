"""
JSON snapshot persistence

Every entity kind lives in its own pretty-printed JSON file under the data
directory. A save rewrites the whole file: the payload goes to a temporary
file next to the target and is then renamed over it, so a crash mid-write
leaves the previous snapshot intact.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from errors import PersistenceError

logger = logging.getLogger(__name__)

USER_FILE = "user-data.json"
PRODUCT_FILE = "product-data.json"
ORDER_FILE = "order-data.json"
CART_FILE = "user-cart-data.json"


class SnapshotFile:
    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, payload: Dict[str, Any]) -> None:
        """Atomically replace the snapshot. Raises PersistenceError on failure."""
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.remove(tmp_name)

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Return the parsed snapshot, or None if there is nothing usable.

        A file that cannot be parsed is deleted so the caller can fall back
        to its default data.
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Corrupted snapshot %s (%s); removing it", self.path, e)
            self.discard()
            return None
        except OSError as e:
            logger.error("Could not read snapshot %s: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Snapshot %s is not a JSON object; removing it", self.path)
            self.discard()
            return None
        return data

    def discard(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Could not remove snapshot %s: %s", self.path, e)
