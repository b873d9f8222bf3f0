"""Standard container recognition and lowering.

| C++                  | Kind        | Rust            | Go                          |
|----------------------|-------------|-----------------|-----------------------------|
| vector<T>            | sequence    | Vec<T>          | []T                         |
| list<T>              | linked_list | LinkedList<T>   | []T                         |
| deque<T>             | deque       | VecDeque<T>     | []T                         |
| map<K, V>            | ordered_map | BTreeMap<K, V>  | map[K]V                     |
| unordered_map<K, V>  | hash_map    | HashMap<K, V>   | map[K]V                     |
| set<T>               | ordered_set | BTreeSet<T>     | map[T]bool                  |
| unordered_set<T>     | hash_set    | HashSet<T>      | map[T]bool                  |
| string               | string      | String          | string                      |
| pair<A, B>           | pair        | (A, B)          | struct { First A; Second B }|
| optional<T>          | optional    | Option<T>       | *T                          |
"""

from __future__ import annotations

import re
from typing import Callable

from hybrid.ir import Type
from hybrid.mappings import MappingConfig, fill
from hybrid.scan import match_delimited, split_top_level

_STD_PREFIX = re.compile(r"\bstd::")
_PLACEHOLDER_MARK = re.compile(r"\{(\d+)\}")


def strip_std(text: str) -> str:
    return _STD_PREFIX.sub("", text)


def extract_container_name(text: str) -> str:
    """Template name before the outermost '<', without std::."""
    t = strip_std(text).strip()
    idx = t.find("<")
    if idx >= 0:
        t = t[:idx]
    return t.strip()


def split_template_args(text: str) -> list[str]:
    """Arguments inside the outermost <...>, split at angle depth zero.

    map<string, vector<pair<int, int>>> yields ["string",
    "vector<pair<int, int>>"]. No brackets yields an empty list. An unclosed
    bracket takes the rest of the text as the argument list.
    """
    start = text.find("<")
    if start < 0:
        return []
    end = match_delimited(text, start, angle=True)
    if end < 0:
        end = len(text)
    return split_top_level(text[start + 1 : end], angle=True)


def container_kind(name: str, mappings: MappingConfig) -> str | None:
    return mappings.containers.get(extract_container_name(name))


def is_container(text: str, mappings: MappingConfig) -> bool:
    return container_kind(text, mappings) is not None


class ContainerLowering:
    """Fill per-target container templates with lowered arguments."""

    def __init__(self, mappings: MappingConfig) -> None:
        self.mappings = mappings

    def rust(self, typ: Type, lower_arg: Callable[[Type], str]) -> str:
        args = [lower_arg(a) for a in typ.template_args]
        if typ.name == "tuple":
            return "(" + ", ".join(args) + ")"
        return self._fill("rust", typ.kind, args)

    def go(self, typ: Type, lower_arg: Callable[[Type], str]) -> str:
        args = [lower_arg(a) for a in typ.template_args]
        if typ.name == "tuple" and len(args) != 2:
            fields = "; ".join(f"F{i} {a}" for i, a in enumerate(args))
            return "struct { " + fields + " }"
        return self._fill("go", typ.kind, args)

    def _fill(self, target: str, kind: str, args: list[str]) -> str:
        table = self.mappings.target(target)
        template = table["containers"][kind]
        needed = {int(m) for m in _PLACEHOLDER_MARK.findall(template)}
        placeholder = table["placeholder"]
        while len(args) < len(needed):
            args.append(placeholder)
        return fill(template, args)
