"""Single source of truth for the files of a backup set.

The exporter writes MANIFEST_FILE built from ENTRIES. The importer uses the
manifest, when present, to decide which files a set must contain.
"""

import json
from dataclasses import dataclass
from typing import Any

MANIFEST_FILE = "manifest.json"
DICT_FILE = "dict.json"
SESSIONS_FILE = "sessions.csv"
TOTALS_FILE = "totals.csv"
TAG_SESSIONS_FILE = "tag_sessions.csv"
TAG_TOTALS_FILE = "tag_totals.csv"
APP_USAGE_FILE = "app_usage.csv"

# Bump on backward-incompatible changes to the file set or formats.
# Optional additions do not need a bump.
SCHEMA_VERSION = 3


@dataclass(frozen=True)
class Entry:
    """One file of the backup set."""

    name: str
    required: bool
    handler: str


# Keep in sync with backup.export_to_directory, which writes all of these
ENTRIES: tuple[Entry, ...] = (
    Entry(name=DICT_FILE, required=False, handler="dict_v1"),
    Entry(name=SESSIONS_FILE, required=True, handler="sessions_v1"),
    Entry(name=TOTALS_FILE, required=False, handler="totals_ignore"),
    Entry(name=TAG_SESSIONS_FILE, required=True, handler="tag_sessions_v1"),
    Entry(name=TAG_TOTALS_FILE, required=False, handler="tag_totals_ignore"),
    Entry(name=APP_USAGE_FILE, required=False, handler="app_usage_v1"),
)

KNOWN_HANDLERS = {entry.handler for entry in ENTRIES}


@dataclass
class ParsedManifest:
    schema_version: int
    files: list[Entry]

    def required_files(self) -> list[str]:
        return [entry.name for entry in self.files if entry.required]


def build_manifest(exported_at_ms: int) -> dict[str, Any]:
    """Return the manifest document for the current schema."""
    return {
        "schemaVersion": SCHEMA_VERSION,
        "exportedAt": exported_at_ms,
        "files": [
            {"name": entry.name, "required": entry.required, "handler": entry.handler}
            for entry in ENTRIES
        ],
    }


def build_manifest_json(exported_at_ms: int) -> str:
    return json.dumps(build_manifest(exported_at_ms), indent=2) + "\n"


def parse_manifest_json(text: str) -> ParsedManifest:
    """Parse a manifest, tolerating missing fields.

    Raises:
        ValueError: If the text is not a JSON object
    """
    root = json.loads(text)
    if not isinstance(root, dict):
        raise ValueError("manifest.json must contain a JSON object")

    files = []
    for item in root.get("files") or []:
        if not isinstance(item, dict):
            continue
        files.append(
            Entry(
                name=str(item.get("name", "")),
                required=bool(item.get("required", False)),
                handler=str(item.get("handler", "")),
            )
        )
    return ParsedManifest(schema_version=int(root.get("schemaVersion", 0) or 0), files=files)
