"""
Conflict resolution for detected mode keywords.

resolve() turns the matcher's unordered output into the final activation list:
1. Deduplicate by name (first occurrence keeps its args)
2. cancel present -> [cancel] only
3. Apply the pairwise exclusivity overrides
4. ralph and team both survive (they are linked after activation)
5. Sort by PRIORITY
6. ralph without ecomode/ultrawork also activates ultrawork
"""

from typing import Iterable, List, Tuple

from omc_modes.keywords import ModeMatch

PRIORITY: Tuple[str, ...] = (
    "cancel",
    "ralph",
    "autopilot",
    "team",
    "ultrapilot",
    "ultrawork",
    "ecomode",
    "pipeline",
    "ralplan",
    "plan",
    "tdd",
    "research",
    "ultrathink",
    "deepsearch",
    "analyze",
    "codex",
    "gemini",
)

# (winner, loser): when both are present the loser is removed
EXCLUSIVITY_OVERRIDES: Tuple[Tuple[str, str], ...] = (
    ("ecomode", "ultrawork"),
    ("team", "autopilot"),
    ("team", "ultrapilot"),
)

# Pairs that may co-exist and are cross-referenced in state
LINKED_PAIRS: Tuple[Tuple[str, str], ...] = (("ralph", "team"),)

_RANK = {name: i for i, name in enumerate(PRIORITY)}


def _rank(match: ModeMatch) -> int:
    return _RANK.get(match.name, len(PRIORITY))


def dedupe(matches: Iterable[ModeMatch]) -> List[ModeMatch]:
    seen = set()
    unique = []
    for m in matches:
        if m.name not in seen:
            seen.add(m.name)
            unique.append(m)
    return unique


def apply_overrides(matches: List[ModeMatch]) -> List[ModeMatch]:
    names = {m.name for m in matches}
    removed = {loser for winner, loser in EXCLUSIVITY_OVERRIDES
               if winner in names and loser in names}
    return [m for m in matches if m.name not in removed]


def synthesize_parallelism(matches: List[ModeMatch]) -> List[ModeMatch]:
    """Persistence implies parallel execution unless efficiency was requested."""
    names = {m.name for m in matches}
    if "ralph" in names and "ecomode" not in names and "ultrawork" not in names:
        matches = matches + [ModeMatch("ultrawork", synthesized=True)]
        matches.sort(key=_rank)
    return matches


def resolve(matches: Iterable[ModeMatch]) -> List[ModeMatch]:
    """Produce the ordered, deduplicated activation list.

    Deterministic: the output order is PRIORITY restricted to the surviving
    names, independent of input order.
    """
    unique = dedupe(matches)
    for m in unique:
        if m.name == "cancel":
            return [m]
    resolved = apply_overrides(unique)
    resolved.sort(key=_rank)
    return synthesize_parallelism(resolved)


def linked_pairs(resolved: Iterable[ModeMatch]) -> List[Tuple[str, str]]:
    names = {m.name for m in resolved}
    return [(a, b) for a, b in LINKED_PAIRS if a in names and b in names]
