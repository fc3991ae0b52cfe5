"""Tag compatibility matrix.

Built once from the configured `compatible_with` lists and read-only
afterwards, so one instance can be shared by the scorer, the filter, the
resolver and the conflict detector.

Values:
  1.0  identical tags
  0.8  synergistic  (both tags list each other)
  0.5  compatible   (one side lists the other; symmetric closure)
  0.0  incompatible (both tags configured, neither lists the other)

Tags missing from the configuration have no entry and are never reported
as incompatible.
"""

from __future__ import annotations

from functools import lru_cache
from itertools import combinations
from types import MappingProxyType
from typing import Iterable, Mapping

from docselect.config import TagConfig

SYNERGISTIC = 0.8
COMPATIBLE = 0.5


def pair_key(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a <= b else (b, a)


class TagCompatibilityMatrix:
    """Immutable symmetric compatibility lookup keyed by sorted tag pair."""

    def __init__(self, values: Mapping[tuple[str, str], float], known_tags: Iterable[str]):
        self._values = MappingProxyType(dict(values))
        self._known = frozenset(known_tags)

    @classmethod
    def from_tags(cls, tags: Mapping[str, TagConfig]) -> TagCompatibilityMatrix:
        values: dict[tuple[str, str], float] = {}
        for a, b in combinations(sorted(tags), 2):
            a_lists_b = b in tags[a].compatible_with
            b_lists_a = a in tags[b].compatible_with
            if a_lists_b and b_lists_a:
                values[(a, b)] = SYNERGISTIC
            elif a_lists_b or b_lists_a:
                values[(a, b)] = COMPATIBLE
        return cls(values, tags.keys())

    @property
    def known_tags(self) -> frozenset[str]:
        return self._known

    def compatibility(self, a: str, b: str) -> float:
        """Compatibility in [0, 1]; 0.0 for unknown or incompatible pairs."""
        if a == b:
            return 1.0
        return self._values.get(pair_key(a, b), 0.0)

    def is_known(self, tag: str) -> bool:
        return tag in self._known

    def is_incompatible(self, a: str, b: str) -> bool:
        """True only when both tags are configured and no entry links them."""
        if a == b or a not in self._known or b not in self._known:
            return False
        return pair_key(a, b) not in self._values

    def incompatible_pairs(self, tags: Iterable[str]) -> list[tuple[str, str]]:
        unique = sorted(set(tags))
        return [(a, b) for a, b in combinations(unique, 2) if self.is_incompatible(a, b)]

    def pairs_above(self, threshold: float) -> list[tuple[str, str]]:
        return sorted(k for k, v in self._values.items() if v > threshold)

    def __len__(self) -> int:
        return len(self._values)


def matrix_for(tags: Mapping[str, TagConfig]) -> TagCompatibilityMatrix:
    """Shared matrix for a tag configuration, rebuilt only when the lists change."""
    signature = tuple(sorted(
        (name, tuple(sorted(tag.compatible_with))) for name, tag in tags.items()
    ))
    return _matrix_for_signature(signature)


@lru_cache(maxsize=32)
def _matrix_for_signature(
    signature: tuple[tuple[str, tuple[str, ...]], ...],
) -> TagCompatibilityMatrix:
    return TagCompatibilityMatrix.from_tags(
        {name: TagConfig(compatible_with=list(compatible)) for name, compatible in signature}
    )
