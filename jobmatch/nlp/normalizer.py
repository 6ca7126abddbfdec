# jobmatch/nlp/normalizer.py
import csv
from functools import lru_cache
from pathlib import Path

# Optional site-specific aliases; columns: alias,canonical
ALIAS_CSV = Path("artifacts/ontologies/skills.csv")

# Spellings seen on job-board resumes -> the lexicon term the matcher uses
SKILL_ALIASES = {
    "forklift operator": "forklift", "forklift certified": "forklift", "fork lift": "forklift",
    "reach truck": "forklift", "pallet jacks": "pallet jack",
    "cdl-a": "cdl", "cdl class a": "cdl", "class a cdl": "cdl",
    "cashiering": "cash handling", "cash register": "cash handling", "pos": "point of sale",
    "ms office": "microsoft office", "msoffice": "microsoft office", "excel": "microsoft excel",
    "customer support": "customer service", "client service": "customer service",
    "certified nursing assistant": "cna", "cpr/aed": "cpr", "first-aid": "first aid",
    "espanol": "spanish", "español": "spanish", "bilingual (spanish)": "bilingual spanish",
    "spanish speaker": "spanish", "bilingual english/spanish": "bilingual spanish",
}


@lru_cache(maxsize=4)
def load_aliases(path: Path = ALIAS_CSV) -> dict[str, str]:
    aliases = dict(SKILL_ALIASES)
    if not path.exists():
        return aliases
    with path.open("r", newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            alias = (row.get("alias") or "").strip().lower()
            canonical = (row.get("canonical") or "").strip().lower()
            if alias and canonical:
                aliases[alias] = canonical
    return aliases


def normalize_terms(raw_tokens: list[str], limit: int | None = None) -> list[str]:
    """Lowercase, map aliases to canonical terms, de-dup in first-seen order."""
    aliases = load_aliases()
    out: list[str] = []
    for token in raw_tokens:
        term = (token or "").strip().lower()
        if not term:
            continue
        term = aliases.get(term, term)
        if len(term) < 2 or term in out:
            continue
        out.append(term)
        if limit is not None and len(out) >= limit:
            break
    return out
