from typing import Any

import yaml  # type: ignore
import yaml.constructor

from .yaml import _LiteralDumper

# ---------- Frontmatter helpers ----------


class UniqueKeyLoader(yaml.SafeLoader):
    """Custom YAML loader that forbids duplicate keys."""

    def construct_mapping(self, node, deep=False):
        mapping = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in mapping:
                raise yaml.constructor.ConstructorError(
                    None, None, f"found duplicate key '{key}'", key_node.start_mark
                )
            mapping.add(key)
        return super().construct_mapping(node, deep)


def split_frontmatter(md_text: str) -> tuple[str, str] | None:
    """Split markdown into (raw_yaml, body).
    Uses line-by-line parsing instead of regex for reliability.
    Returns None when there is no closed frontmatter block.
    """
    lines = md_text.split("\n")

    # Check for opening ---
    if not lines or lines[0].strip() != "---":
        return None

    # Find closing ---
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            return "\n".join(lines[1:i]), "\n".join(lines[i + 1 :])

    return None


def parse_frontmatter(md_text: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown text.

    Returns ({}, text) when there is no frontmatter and
    ({"__yaml_error__": msg}, text) when the YAML cannot be parsed.
    """
    # Handle potential BOM (Byte Order Mark)
    md_text = md_text.lstrip("\ufeff")

    parts = split_frontmatter(md_text)
    if parts is None:
        return {}, md_text

    raw, body = parts

    # Fix tabs (common user error)
    if "\t" in raw:
        raw = raw.replace("\t", "  ")

    try:
        meta = yaml.load(raw, Loader=UniqueKeyLoader) or {}
    except yaml.YAMLError as e:
        return {"__yaml_error__": str(e)}, md_text

    if not isinstance(meta, dict):
        return {"__yaml_error__": f"frontmatter is a {type(meta).__name__}, not a mapping"}, md_text

    return meta, body


def rebuild_markdown_with_frontmatter(meta: dict[str, Any], body: str) -> str:
    yaml_text = yaml.dump(
        meta,
        Dumper=_LiteralDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=10**9,
    )
    return f"---\n{yaml_text}---\n{body}"
