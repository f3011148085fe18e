"""
Exact-match deduplication of QAPairs.

Loose key: normalized question text (single-document runs).
Strict key: question plus pipe-joined options (merging across files).
First occurrence wins; input order is preserved. No fuzzy matching.
"""

from typing import Callable, Iterable, List, Optional, Set

from server.services.qa_pairs import QAPair


def normalize_question(text: str) -> str:
    return text.lower().strip()


def loose_key(pair: QAPair) -> str:
    return normalize_question(pair.question)


def strict_key(pair: QAPair) -> str:
    options = "|".join(o.lower() for o in pair.options)
    return f"{normalize_question(pair.question)}|{options}"


def dedupe_qa_pairs(
    pairs: Iterable[QAPair],
    strict: bool = False,
    key: Optional[Callable[[QAPair], str]] = None,
) -> List[QAPair]:
    """Drop pairs whose key was already seen."""
    key_fn = key or (strict_key if strict else loose_key)
    seen: Set[str] = set()
    out: List[QAPair] = []
    for pair in pairs:
        k = key_fn(pair)
        if k in seen:
            continue
        seen.add(k)
        out.append(pair)
    return out
