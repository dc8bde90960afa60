"""
Document helpers shared by the stores and the staged transaction.

Covers YAML frontmatter in markdown files, the fenced events block in a
location's Events.md, dotted-section merges, and the mapping from logical
document paths to the kind of writer that owns them.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

import yaml


WORLD_STATE_PATH = "world-state.yaml"
QUEST_LEDGER_PATH = "active-quests.yaml"
NPC_DOCUMENTS_DIR = "npcs"
LOCATION_STATE_FILE = "State.md"

_EVENTS_BLOCK = re.compile(r"###\s+Events\s*\n```ya?ml\s*\n(.*?)\n```", re.IGNORECASE | re.DOTALL)


def npc_document_path(npc_id: str) -> str:
    return f"{NPC_DOCUMENTS_DIR}/{npc_id}.md"


def location_state_path(location_id: str) -> str:
    return f"{location_id}/{LOCATION_STATE_FILE}"


# -----------------------------------------------------------------------------
# YAML
# -----------------------------------------------------------------------------

def load_yaml(text: str) -> dict:
    """Parse a YAML mapping. Empty documents load as an empty dict."""
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"expected a mapping, got {type(data).__name__}")
    return data


def dump_yaml(data: dict) -> str:
    return yaml.safe_dump(
        data,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
        width=1000,
    )


def parse_frontmatter(content: str) -> tuple[dict, str]:
    """
    Split a markdown document into (frontmatter, body).

    Documents without a closed leading --- block have no frontmatter and the
    whole content is the body.
    """
    if not (content.startswith("---\n") or content.startswith("---\r\n")):
        return {}, content

    lines = content.split("\n")
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            data = load_yaml("\n".join(lines[1:i]))
            return data, "\n".join(lines[i + 1:])

    return {}, content


def render_frontmatter(data: dict, body: str) -> str:
    return f"---\n{dump_yaml(data)}---\n{body}"


def extract_events_block(content: str) -> dict:
    """
    Parse the fenced yaml block under a `### Events` heading.

    Raises:
        LookupError: no events block in the document
        ValueError: the block is not a mapping with an `events` list
    """
    match = _EVENTS_BLOCK.search(content)
    if not match:
        raise LookupError("No Events YAML block found")

    data = load_yaml(match.group(1))
    if not isinstance(data.get("events"), list):
        raise ValueError('Events YAML must contain an "events" array')
    return data


# -----------------------------------------------------------------------------
# Section merges
# -----------------------------------------------------------------------------

def merge_section(doc: dict, section: str, updates: dict) -> dict:
    """
    Merge updates into the mapping at a dotted section path.

    Intermediate mappings are created as needed; a non-mapping value in the
    way is replaced. Returns the section mapping after the merge.
    """
    node = doc
    for part in section.split("."):
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node.update(updates)
    return node


def upsert_quest(ledger: dict, quest_id: str, fields: dict) -> bool:
    """
    Update a quest entry in a ledger's `quests` list, creating it if absent.

    Returns True when the entry was created.
    """
    quests = ledger.get("quests")
    if not isinstance(quests, list):
        quests = []
        ledger["quests"] = quests

    for quest in quests:
        if isinstance(quest, dict) and quest.get("questId") == quest_id:
            quest.update(fields)
            return False

    quests.append({"questId": quest_id, **fields})
    return True


# -----------------------------------------------------------------------------
# Resource classification
# -----------------------------------------------------------------------------

class ResourceKind(str, Enum):
    NPC_DOCUMENT = "npc"
    LOCATION_STATE = "location_state"
    WORLD_STATE = "world_state"
    QUEST_LEDGER = "quest_ledger"


@dataclass(frozen=True)
class ResourceRef:
    kind: ResourceKind
    key: str  # npc id, location id, or the ledger path


def classify_path(path: str) -> ResourceRef | None:
    """Map a logical document path to its writer, or None if unknown."""
    p = PurePosixPath(path.replace("\\", "/"))

    if p.name == LOCATION_STATE_FILE and len(p.parts) >= 2:
        return ResourceRef(ResourceKind.LOCATION_STATE, p.parent.name)
    if p.suffix == ".md" and p.parent.name.lower() == NPC_DOCUMENTS_DIR:
        return ResourceRef(ResourceKind.NPC_DOCUMENT, p.stem)
    if p.name == WORLD_STATE_PATH:
        return ResourceRef(ResourceKind.WORLD_STATE, WORLD_STATE_PATH)
    if p.name == QUEST_LEDGER_PATH:
        return ResourceRef(ResourceKind.QUEST_LEDGER, QUEST_LEDGER_PATH)
    return None
