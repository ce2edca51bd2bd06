"""Split SQL scripts into statements without breaking quoted text or function bodies"""

import re
from pathlib import Path
from typing import Union

_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z_0-9]*)?\$")


def split_statements(sql: str) -> list[str]:
    """
    Split on top-level ';'. Semicolons inside '...' and "..." literals and
    $tag$ ... $tag$ bodies are kept; -- and /* */ comments are dropped.
    """
    statements = []
    current = []
    i = 0
    n = len(sql)

    while i < n:
        ch = sql[i]

        if sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end
            continue

        if sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue

        if ch in ("'", '"'):
            end = i + 1
            while end < n:
                if sql[end] == ch:
                    # doubled quote is an escaped quote
                    if end + 1 < n and sql[end + 1] == ch:
                        end += 2
                        continue
                    break
                end += 1
            current.append(sql[i : end + 1])
            i = end + 1
            continue

        if ch == "$":
            match = _DOLLAR_TAG.match(sql, i)
            if match:
                tag = match.group(0)
                end = sql.find(tag, match.end())
                end = n if end == -1 else end + len(tag)
                current.append(sql[i:end])
                i = end
                continue

        if ch == ";":
            statement = "".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
            i += 1
            continue

        current.append(ch)
        i += 1

    statement = "".join(current).strip()
    if statement:
        statements.append(statement)
    return statements


def read_statements(path: Union[str, Path]) -> list[str]:
    return split_statements(Path(path).read_text(encoding="utf-8"))
