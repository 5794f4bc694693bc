"""Reading and writing template documents."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

logger = logging.getLogger(__name__)


def read_json(file_path: Union[str, Path]) -> Dict[str, Any]:
    """Read a JSON file.

    Args:
        file_path: Path to JSON file

    Returns:
        Parsed JSON content

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
    """
    file_path = Path(file_path)
    logger.debug(f"Reading JSON from {file_path}")

    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(
    data: Union[Dict[str, Any], List[Any]],
    file_path: Union[str, Path],
    indent: int = 2,
) -> None:
    """Write data as pretty-printed UTF-8 JSON, creating parent directories.

    Writes to a temporary sibling first and renames it into place so a crash
    never leaves a half-written template behind.
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False)
    tmp_path.replace(file_path)

    logger.info(f"Wrote JSON to {file_path}")
