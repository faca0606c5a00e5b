"""Fuzzy producer name matching."""


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Case-insensitive similarity in [0, 1]; 1.0 for two empty strings."""
    a, b = a.lower(), b.lower()
    longer, shorter = (a, b) if len(a) >= len(b) else (b, a)
    if not longer:
        return 1.0
    return (len(longer) - levenshtein_distance(longer, shorter)) / len(longer)


def similar_names(name: str, candidates: list[str], threshold: float, limit: int) -> list[dict]:
    """Candidates strictly above the threshold, most similar first."""
    scored = [(similarity(name, c), c) for c in candidates]
    scored = [s for s in scored if s[0] > threshold]
    scored.sort(key=lambda s: s[0], reverse=True)
    return [{"name": c, "similarity": round(score, 3)} for score, c in scored[:limit]]
