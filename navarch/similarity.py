"""
Edit-distance suggestions for unmatched names ("did you mean ...").

All comparisons are case-insensitive. Candidates are ranked by distance first
and then lexically, so the same input always yields the same suggestions.

    >>> find_similar("buld", ["build", "push", "pull"], max_distance=1)
    ['build']
"""
import functools


@functools.lru_cache(maxsize=1024)
def distance(source, target, /):
    """
    Levenshtein distance between two strings.

    The number of single-character insertions, deletions, or substitutions
    required to turn `source` into `target`.
    """
    if not source:
        return len(target)
    if not target:
        return len(source)

    previous = list(range(len(target) + 1))
    for row, left in enumerate(source, 1):
        current = [row]
        for column, right in enumerate(target, 1):
            current.append(min(
                previous[column] + 1,                      # deletion
                current[column - 1] + 1,                   # insertion
                previous[column - 1] + (left != right),    # substitution
            ))
        previous = current
    return previous[-1]


def find_similar(input, candidates, /, max_distance=2, max_results=3):
    """
    Return up to `max_results` candidates within `max_distance` of `input`.

    Parameters
    - input: str
      The unmatched token (compared case-insensitively).
    - candidates: Iterable[str]
      Known names; duplicates are collapsed, original spelling is returned.
    - max_distance: int
      Inclusive edit-distance ceiling.
    - max_results: int
      Maximum number of suggestions.

    Returns
    - list[str]: sorted by (distance, candidate).
    """
    if not input:
        return []

    input = input.lower()
    ranked = sorted(
        (rank, candidate)
        for candidate in set(candidates)
        if (rank := distance(input, candidate.lower())) <= max_distance
    )
    return [candidate for _, candidate in ranked[:max_results]]


def find_most_similar(input, candidates, /, max_distance=3):
    """
    Return the single closest candidate within `max_distance`, or None.
    """
    try:
        return find_similar(input, candidates, max_distance=max_distance, max_results=1)[0]
    except IndexError:
        return None


__all__ = (
    "distance",
    "find_similar",
    "find_most_similar",
)
