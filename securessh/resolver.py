"""
SecureSSH - Alias Resolution

Turns what the user typed into exactly one host record:

    1. Exact, case-sensitive alias match wins outright.
    2. Otherwise every alias is fuzzily scored against the query and the
       best one is returned.

Fuzzy scoring contract (case-insensitive subsequence match):
    - Every query character must appear in the alias, in order. An alias
      that does not contain the whole query as a subsequence does not
      match at all; that is the pass threshold.
    - Per matched character:
        +10  first character of the alias
        +20  character right after a separator  / - _ space . \\
        +20  lower -> upper camelCase boundary
        +N   adjacent run: previous_run_bonus * 2 + 5 when the match
             immediately follows the previous matched character
      For each query character the best-scoring position is kept, up to
      the point where the next query character shows up.
    - -5 per alias character skipped before the first match (max -15),
      then -1 per alias character left unmatched.
    - Results are sorted by score, highest first. Equal scores keep the
      order in which records were supplied, so the first one seen wins.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .errors import HostNotFound
from .models import HostRecord

FIRST_CHAR_MATCH_BONUS = 10
MATCH_FOLLOWING_SEPARATOR_BONUS = 20
CAMEL_CASE_MATCH_BONUS = 20
ADJACENT_MATCH_BONUS = 5
UNMATCHED_LEADING_CHAR_PENALTY = -5
MAX_UNMATCHED_LEADING_CHAR_PENALTY = -15

SEPARATORS = "/-_ .\\"


@dataclass(frozen=True)
class FuzzyMatch:
    text: str
    index: int
    score: int
    matched_indexes: Tuple[int, ...]


def _fold_eq(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()


def score(pattern: str, text: str, index: int = 0) -> Optional[FuzzyMatch]:
    """
    Score one candidate string.

    Returns:
        FuzzyMatch, or None when pattern is empty or not a subsequence
    """
    if not pattern:
        return None

    matched: List[int] = []
    total = 0
    pattern_index = 0
    best_score = -1
    matched_index = -1
    adjacent_bonus = 0
    last = ""
    last_index = 0

    for j, ch in enumerate(text):
        if _fold_eq(ch, pattern[pattern_index]):
            s = 0
            if j == 0:
                s += FIRST_CHAR_MATCH_BONUS
            if last.islower() and ch.isupper():
                s += CAMEL_CASE_MATCH_BONUS
            if j != 0 and last in SEPARATORS:
                s += MATCH_FOLLOWING_SEPARATOR_BONUS
            if matched and matched[-1] == last_index:
                bonus = adjacent_bonus * 2 + ADJACENT_MATCH_BONUS
                s += bonus
                adjacent_bonus += bonus
            if s > best_score:
                best_score = s
                matched_index = j

        next_p = pattern[pattern_index + 1] if pattern_index < len(pattern) - 1 else ""
        next_c = text[j + 1] if j + 1 < len(text) else ""

        # Commit the best position once the next query char is coming up,
        # or the text has run out.
        if not next_c or (next_p and _fold_eq(next_p, next_c)):
            if matched_index > -1:
                if not matched:
                    penalty = matched_index * UNMATCHED_LEADING_CHAR_PENALTY
                    best_score += max(penalty, MAX_UNMATCHED_LEADING_CHAR_PENALTY)
                total += best_score
                matched.append(matched_index)
                best_score = -1
                matched_index = -1
                pattern_index += 1
                if pattern_index == len(pattern):
                    break

        last_index = j
        last = ch

    if len(matched) != len(pattern):
        return None

    total += len(matched) - len(text)
    return FuzzyMatch(text=text, index=index, score=total, matched_indexes=tuple(matched))


def find(pattern: str, candidates: Sequence[str]) -> List[FuzzyMatch]:
    """All matching candidates, best first, ties in input order."""
    matches = []
    for i, text in enumerate(candidates):
        m = score(pattern, text, i)
        if m is not None:
            matches.append(m)
    # sorted() is stable: equal scores keep input order
    return sorted(matches, key=lambda m: -m.score)


class AliasResolver:
    """Maps user input to host records. Stateless; records are passed in."""

    def resolve(self, query: str, records: Sequence[HostRecord]) -> HostRecord:
        """
        Exact alias first, best fuzzy match second.

        Raises:
            HostNotFound: no records, or nothing matches the query
        """
        if not records:
            raise HostNotFound(query)

        for record in records:
            if record.alias == query:
                return record

        matches = find(query, [r.alias for r in records])
        if not matches:
            raise HostNotFound(query)
        return records[matches[0].index]

    def rank(self, query: str, records: Sequence[HostRecord]) -> List[HostRecord]:
        """Every fuzzily matching record, best first."""
        return [records[m.index] for m in find(query, [r.alias for r in records])]

    def suggest(self, prefix: str, records: Sequence[HostRecord]) -> List[str]:
        """
        Completion candidates for an alias being typed.

        Empty prefix returns every alias unranked (insertion order).
        """
        aliases = [r.alias for r in records]
        if not prefix:
            return aliases
        return [m.text for m in find(prefix, aliases)]
