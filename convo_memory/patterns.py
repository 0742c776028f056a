"""Default regex patterns for spotting user corrections.

Kept in a standalone module to avoid circular imports between types.py
and config.py.
"""

DEFAULT_CORRECTION_PATTERNS: list[str] = [
    r"\bactually\b",
    r"\bthat'?s (?:not|wrong|incorrect)\b",
    r"\b(?:no|nope),? (?:not|don'?t|do not|instead)\b",
    r"\binstead(?: of)?\b",
    r"\bi (?:meant|said|asked)\b",
    r"\b(?:please )?(?:don'?t|do not|stop) (?:do|doing|use|using|change|changing|touch|touching)\b",
    r"\b(?:revert|undo) (?:that|this|the)\b",
    r"\byou (?:missed|forgot|ignored)\b",
]
