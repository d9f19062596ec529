from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class DiffLine:
    op: str  # "+", "-" or " "
    text: str

    def render(self) -> str:
        return f"{self.op} {self.text}"


def diff_lines(old: str, new: str) -> List[DiffLine]:
    """Line diff from ``old`` to ``new``; unchanged lines are kept for context."""
    result: List[DiffLine] = []
    old_lines = old.splitlines()
    new_lines = new.splitlines()
    matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            result.extend(DiffLine(" ", line) for line in old_lines[i1:i2])
            continue
        result.extend(DiffLine("-", line) for line in old_lines[i1:i2])
        result.extend(DiffLine("+", line) for line in new_lines[j1:j2])
    return result
