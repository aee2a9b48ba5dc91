"""Atomic JSON file helpers shared by the ledger and the audit log."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from ..errors import PersistenceError


def read_json(path: Path, default: Any) -> Any:
    """
    Read a JSON document, returning ``default`` when the file does not exist.

    Raises:
        PersistenceError: If the file exists but cannot be read or decoded
    """
    try:
        with path.open("r", encoding="utf-8") as file:
            return json.load(file)
    except FileNotFoundError:
        return default
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"Corrupt JSON in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceError(f"Unable to read {path}: {exc}") from exc


def write_json_atomically(path: Path, data: Any) -> None:
    """
    Persist ``data`` as JSON without ever exposing a partial file.

    The document is written to a temporary sibling, flushed to disk and then
    renamed over the destination.

    Raises:
        PersistenceError: If the file cannot be written
    """
    temp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with temp_path.open("w", encoding="utf-8") as file:
            json.dump(data, file, indent=2)
            file.flush()
            os.fsync(file.fileno())
        os.replace(temp_path, path)
    except (OSError, TypeError, ValueError) as exc:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise PersistenceError(f"Unable to write {path}: {exc}") from exc
