"""
Duplication Namer

Computes clone titles of the form ``"<root> (Copy <n>)"``. Copying a copy
names relative to the root title, never ``"(Copy 1) (Copy 1)"``.
"""

import re
from typing import Iterable

COPY_SUFFIX = re.compile(r"^(?P<root>.*) \(Copy (?P<number>\d+)\)$")


def root_title(title: str) -> str:
    """Strip a trailing ``" (Copy <n>)"`` suffix, if present."""
    match = COPY_SUFFIX.match(title)
    return match.group("root") if match else title


def copy_title(root: str, number: int) -> str:
    return f"{root} (Copy {number})"


def highest_copy_number(root: str, existing_titles: Iterable[str]) -> int:
    """Largest ``n`` among titles ``"<root> (Copy <n>)"``, or 0 if there are none."""
    highest = 0
    for title in existing_titles:
        match = COPY_SUFFIX.match(title)
        if match and match.group("root") == root:
            highest = max(highest, int(match.group("number")))
    return highest


def next_unique_title(base_title: str, existing_titles: Iterable[str]) -> str:
    """
    Compute the next free copy title.

    Args:
        base_title: Title of the definition being copied
        existing_titles: Titles currently in use

    Returns:
        ``"<root> (Copy <k+1>)"`` where ``k`` is the highest existing copy number
    """
    root = root_title(base_title)
    return copy_title(root, highest_copy_number(root, existing_titles) + 1)
