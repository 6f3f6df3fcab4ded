# se_migrator/utils/misc_utils.py
import re
import hashlib
from typing import Tuple


def generate_canonical_id(*args: str) -> str:
    """Generates a consistent, URL-safe ID from one or more strings."""
    combined = "_".join(str(arg).lower() for arg in args if arg)
    # Remove non-alphanumeric characters (except underscore)
    safe_string = re.sub(r"[^\w]+", "", combined.replace(" ", "_"))
    # Long inputs collapse to a short hash
    if len(safe_string) > 100:
        return hashlib.sha1(safe_string.encode()).hexdigest()[:16]
    return safe_string


def split_full_name(name: str) -> Tuple[str, str]:
    """Splits "First Middle Last" into ("First", "Middle Last")."""
    parts = (name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()
