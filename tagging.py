import re

import pandas as pd


DEFAULT_TAG_COLOR = "#6366f1"

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def normalize_tag_name(tag_value):
    if tag_value is None or (not isinstance(tag_value, str) and pd.isna(tag_value)):
        raise ValueError("Tag name is required.")
    name = " ".join(str(tag_value).split())
    if not name:
        raise ValueError("Tag name is required.")
    return name


def normalize_tag_color(color_value):
    color = str(color_value or "").strip() or DEFAULT_TAG_COLOR
    if not _HEX_COLOR.match(color):
        raise ValueError(f"Invalid tag color: {color_value!r} (expected #rrggbb).")
    return color.lower()


def partition_tags(tags):
    """Return ``(active, archived)`` keeping the input order."""
    active = [t for t in tags if not t.is_archived]
    archived = [t for t in tags if t.is_archived]
    return active, archived
