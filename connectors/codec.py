"""
Credential codec — convert a connection's ``key=value`` pairs to and from
the textual encodings the ``connection_key`` column has held over time.

Read path, tried in order:

1. a native sequence of ``"key=value"`` strings;
2. text holding a JSON array of such strings, e.g. ``["a=1","b=2"]``;
3. set-literal text, e.g. ``{"a=1","b=2"}``;
4. a bare single pair, e.g. ``a=1`` (exactly one ``=``).

Write path always produces form 3.  Decoding is lenient: malformed entries
are skipped and reported, never raised, so one corrupt row cannot break a
listing.  Keys and values are not escaped, so the write path rejects text the
read path would split: ``,`` or ``"`` anywhere, or ``=`` inside a key.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from connectors.errors import ValidationError

logger = logging.getLogger(__name__)

_KEY_RESERVED = (",", "\"", "=")
_VALUE_RESERVED = (",", "\"")


class KeyPair(NamedTuple):
    key: str
    value: str


class DecodeResult(NamedTuple):
    pairs: List[KeyPair]
    skipped: List[Any]


def _split_entry(entry: Any) -> Optional[KeyPair]:
    """Split on the first ``=``; ``None`` when key or value ends up empty."""
    if not isinstance(entry, str):
        return None
    key, sep, value = entry.partition("=")
    key, value = key.strip(), value.strip()
    if not sep or not key or not value:
        return None
    return KeyPair(key, value)


def _strip_quotes(item: str) -> str:
    item = item.strip()
    if item.startswith('"'):
        item = item[1:]
    if item.endswith('"'):
        item = item[:-1]
    return item


def _entries(raw: Any) -> Tuple[List[Any], List[Any]]:
    """
    Split any supported representation into ``(entries, unmatched)``:
    raw ``key=value`` strings still to be parsed, and text that matched no
    form at all.
    """
    if raw is None:
        return [], []
    if isinstance(raw, (list, tuple)):
        return list(raw), []
    if not isinstance(raw, str):
        raise TypeError(f"unsupported connection key type: {type(raw).__name__}")

    text = raw.strip()
    if not text:
        return [], []

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return parsed, []

    if text.startswith("{") and text.endswith("}"):
        inner = text[1:-1].strip()
        if not inner:
            return [], []
        return [_strip_quotes(part) for part in inner.split(",")], []

    if text.count("=") == 1:
        return [text], []
    return [], [text]


def decode_lenient(raw: Any) -> DecodeResult:
    """
    Decode ``raw`` and return the valid pairs plus the entries that were
    dropped.  Never raises.
    """
    try:
        entries, skipped = _entries(raw)
        pairs: List[KeyPair] = []
        for entry in entries:
            pair = _split_entry(entry)
            if pair is None:
                skipped.append(entry)
            else:
                pairs.append(pair)
        return DecodeResult(pairs, skipped)
    except Exception as exc:
        logger.error("Could not decode connection key (%s): %s", type(exc).__name__, exc)
        return DecodeResult([], [])


def decode(raw: Any) -> List[KeyPair]:
    """Decode ``raw`` into pairs, logging (not raising) on skipped entries."""
    result = decode_lenient(raw)
    if result.skipped:
        # Entry text may hold secrets; only the count is logged
        logger.warning(
            "Skipped %d malformed connection key entr%s",
            len(result.skipped),
            "y" if len(result.skipped) == 1 else "ies",
        )
    return result.pairs


def check_encodable(key: str, value: str) -> None:
    """Raise ``ValidationError`` if the pair would not read back unchanged."""
    if any(ch in key for ch in _KEY_RESERVED):
        raise ValidationError(f"Connection key name {key!r} may not contain , \" or =")
    if any(ch in value for ch in _VALUE_RESERVED):
        raise ValidationError(f"Value for connection key {key!r} may not contain , or \"")


def encode(pairs: Iterable[Any]) -> str:
    """
    Encode pairs as set-literal text: ``{"k=v","k2=v2"}``.  Raises
    ``ValidationError`` for a pair ``check_encodable`` rejects.
    """
    pairs = list(pairs)
    for key, value in pairs:
        check_encodable(key, value)
    return "{" + ",".join(f'"{key}={value}"' for key, value in pairs) + "}"


# ── Pair helpers ──────────────────────────────────────────────────────────


def to_mapping(pairs: Iterable[KeyPair]) -> Dict[str, str]:
    """Collapse pairs into a dict; the last occurrence of a key wins."""
    return {key: value for key, value in pairs}


def set_pair(pairs: Iterable[KeyPair], key: str, value: str) -> List[KeyPair]:
    """Drop every pair named ``key`` and append ``key=value``."""
    kept = [pair for pair in pairs if pair.key != key]
    kept.append(KeyPair(key, value))
    return kept


def replace_values(pairs: Iterable[KeyPair], values: Mapping[str, str]) -> List[KeyPair]:
    """
    Value-only edit.  Keys are never renamed or added after creation, so an
    unknown key is a ``ValidationError``.
    """
    pairs = list(pairs)
    known = {pair.key for pair in pairs}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValidationError(f"Unknown connection key(s): {', '.join(unknown)}")

    cleaned = {key: (value or "").strip() for key, value in values.items()}
    empty = sorted(key for key, value in cleaned.items() if not value)
    if empty:
        raise ValidationError(f"Empty value for connection key(s): {', '.join(empty)}")
    for key, value in cleaned.items():
        check_encodable(key, value)

    return [KeyPair(pair.key, cleaned.get(pair.key, pair.value)) for pair in pairs]


def validate_credential(pairs: Iterable[KeyPair]) -> None:
    """Check the OAuth credential invariant; raise ``ValidationError`` if broken."""
    mapping = to_mapping(pairs)
    if not mapping.get("access_token"):
        raise ValidationError("Credential is missing access_token")
    if "refresh_token" in mapping and not mapping["refresh_token"]:
        raise ValidationError("Credential has an empty refresh_token")
    if "expires_in" in mapping:
        try:
            int(mapping["expires_in"])
        except ValueError:
            raise ValidationError("Credential expires_in must be numeric") from None


def parse_key_lines(text: str) -> List[str]:
    """
    Parse user-typed keys: either a bracketed list (``["a=1","b=2"]``) or one
    ``key=value`` per line.  Every line must have exactly one ``=`` with a
    non-empty key and value.
    """
    text = (text or "").strip()
    if text.startswith("[") and text.endswith("]"):
        lines = [_strip_quotes(item) for item in text[1:-1].split(",")]
    else:
        lines = text.splitlines()
    lines = [line.strip() for line in lines if line.strip()]

    for line in lines:
        parts = line.split("=")
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            raise ValidationError(f"Expected key=value, got {line.split('=')[0]!r}…")
    return lines
