"""
Catalog inputs — word list and location catalog.

The catalogs are external, read-only JSON files. The games only ever ask for
"at least N items" and do their own shuffling/sampling, so everything here
validates first and raises CatalogError before any game state is touched.
"""
import json
import logging
import os
import random
from functools import lru_cache
from typing import List, Optional, Sequence

from config import settings
from games.errors import CatalogError
from models.outsider import Location

logger = logging.getLogger(__name__)


def _check_size(kind: str, available: int, needed: int) -> None:
    if available == 0:
        raise CatalogError(CatalogError.EMPTY, f"The {kind} catalog is empty", needed=needed)
    if available < needed:
        raise CatalogError(
            CatalogError.INSUFFICIENT,
            f"Not enough {kind}s: need at least {needed}, catalog has {available}",
            needed=needed,
            available=available,
        )


def clean_words(words: Sequence[str]) -> List[str]:
    """Trimmed, non-blank, de-duplicated (first occurrence wins)."""
    seen = set()
    result: List[str] = []
    for w in words:
        word = str(w or "").strip()
        if word and word not in seen:
            seen.add(word)
            result.append(word)
    return result


def sample_words(words: Sequence[str], count: int, rng: Optional[random.Random] = None) -> List[str]:
    """Return ``count`` distinct words in random order."""
    pool = clean_words(words)
    _check_size("word", len(pool), count)
    rng = rng or random.Random()
    return rng.sample(pool, count)


def validate_locations(locations: Sequence[Location], minimum: int = 1) -> List[Location]:
    usable = [loc for loc in locations if loc.location.strip() and loc.roles]
    _check_size("location", len(usable), minimum)
    return usable


def pick_location(locations: Sequence[Location], rng: Optional[random.Random] = None) -> Location:
    usable = validate_locations(locations)
    rng = rng or random.Random()
    return rng.choice(usable)


# ── File-backed catalogs ──────────────────────────────────────────────────────

def _read_json(filename: str):
    path = os.path.join(settings.catalog_dir, filename)
    if not os.path.exists(path):
        logger.warning("Catalog file %s not found — treating as empty", path)
        return []
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@lru_cache(maxsize=1)
def load_words() -> List[str]:
    words = clean_words(_read_json("words.json"))
    logger.info("Loaded %d catalog words", len(words))
    return words


@lru_cache(maxsize=1)
def load_locations() -> List[Location]:
    locations = [Location(**entry) for entry in _read_json("locations.json")]
    logger.info("Loaded %d catalog locations", len(locations))
    return locations
