from typing import Iterable, List, Literal, Optional, Union


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of values (stringified).
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table, or "" when there are no rows.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = [str(h) for h in headers]
    rows = [[str(cell).replace("|", "\\|") for cell in row] for row in rows]

    if aligns is None:
        aligns = ["c"] * len(headers)
    elif len(aligns) != len(headers):
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {"l": ":---", "c": ":---:", "r": "---:"}

    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(align_map[a] for a in aligns) + " |",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return "\n".join(lines)


def is_seed_product_id(pid: Union[int, str, None]) -> bool:
    """
    True for products shipped with the catalog.

    Seed products carry numeric ids, products added from the admin console get
    generated alphanumeric ids. The id shape is the only marker.
    """
    if isinstance(pid, bool) or pid is None:
        return False
    if isinstance(pid, int):
        return True
    return isinstance(pid, str) and pid.isdigit()


def line_count(lines: Iterable) -> int:
    """Total number of units across cart or order lines."""
    return sum(line.qty for line in lines)


def line_total(lines: Iterable) -> int:
    """Sum of price * qty across cart or order lines."""
    return sum(line.price * line.qty for line in lines)


def pid_sort_key(pid: Union[int, str]):
    # numeric ids first in numeric order, generated ids after them
    text = str(pid)
    if text.isdigit():
        return (0, int(text), "")
    return (1, 0, text)


def short_text(text: str, width: int = 40) -> str:
    text = " ".join((text or "").split())
    if len(text) <= width:
        return text
    return text[: width - 1] + "…"
