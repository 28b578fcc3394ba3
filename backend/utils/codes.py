import random
import string
from typing import Optional

# No 0/O or 1/I: codes are read aloud and typed on phones.
_CODE_ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "0O1I")


def generate_room_code(length: int = 4, rng: Optional[random.Random] = None) -> str:
    """Random short room code, e.g. ``"K7QX"``."""
    rng = rng or random
    return "".join(rng.choice(_CODE_ALPHABET) for _ in range(length))


def normalize_room_code(code: str) -> str:
    return (code or "").strip().upper()


def normalize_text(text: str) -> str:
    """Comparison form for guesses and secrets: trimmed, lowercase."""
    return (text or "").strip().lower()
