from dataclasses import dataclass


FORMAT_MARKERS = {
    "bold": ("**", "**"),
    "italic": ("*", "*"),
    "underline": ("<u>", "</u>"),
}


@dataclass(frozen=True)
class EditResult:
    value: str
    cursor: int


def _clamp_selection(value: str, start: int, end: int) -> tuple[int, int]:
    size = len(value)
    start = min(max(int(start or 0), 0), size)
    end = min(max(int(end or 0), 0), size)
    if start > end:
        start, end = end, start
    return start, end


def insert_markers(value: str, start: int, end: int, before: str, after: str = "") -> EditResult:
    """
    Wrap the selected text in ``before``/``after``.

    With a selection the cursor ends up after the closing marker. Without one
    the markers are inserted at the cursor and the cursor is placed between
    them, ready for typing.
    """
    value = value or ""
    start, end = _clamp_selection(value, start, end)
    selected = value[start:end]
    new_value = value[:start] + before + selected + after + value[end:]
    if selected:
        cursor = start + len(before) + len(selected) + len(after)
    else:
        cursor = start + len(before)
    return EditResult(value=new_value, cursor=cursor)


def apply_format(value: str, start: int, end: int, style: str) -> EditResult:
    markers = FORMAT_MARKERS.get(str(style or "").strip().lower())
    if markers is None:
        raise ValueError(f"style must be one of {sorted(FORMAT_MARKERS)}")
    before, after = markers
    return insert_markers(value, start, end, before, after)


def insert_text(value: str, start: int, end: int, text: str) -> EditResult:
    value = value or ""
    text = text or ""
    start, end = _clamp_selection(value, start, end)
    return EditResult(value=value[:start] + text + value[end:], cursor=start + len(text))
