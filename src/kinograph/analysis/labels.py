"""Atom / residue label parsing.

Backends label graph nodes with opaque strings in (at least) two dialects:

* colon dialect  ``serial:chain.atom:resName:resno``  e.g. ``237:A.O:ASP:861``
* slash dialect  ``chain/resno/resName/atom/serial``  e.g. ``R/153/SER/OG/76``

``parse_label`` tries both, then a bare serial, then a permissive regex
fallback. It never raises; fields it cannot recover are left as None.
Numeric fields (serial, resno) are kept only when they are all digits.
"""
from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
import re
from typing import Any, Mapping, Optional

_GENERIC_RE = re.compile(r"(?:(\d+):)?([A-Za-z0-9])\.?([A-Za-z0-9]+)?[:/]?([A-Za-z]{1,3})?:?(\d+)?")
_RESNO_CHAIN_RE = re.compile(r"^\s*(\d{1,5})\s*:\s*([A-Za-z0-9])\s*$")
_CHAIN_RESNO_RE = re.compile(r"^\s*([A-Za-z0-9])[\s,]+(\d{1,5})\s*$")
_RESIDUE_SEARCH = (
    (re.compile(r"([A-Za-z0-9])\s*/\s*(\d{1,5})"), 1, 2),
    (re.compile(r"(\d{1,5})\s*:\s*([A-Za-z0-9])"), 2, 1),
    (re.compile(r"([A-Za-z0-9])\s*[, ]?\s*(\d{1,5})"), 1, 2),
)
_FIRST_ALPHA_RE = re.compile(r"[A-Za-z]")

_ROLE_KEYS = ("role", "group", "chain")
_RESNO_KEYS = ("resno", "resi", "resSeq", "resid")
_RESNAME_KEYS = ("resname", "resn", "resName")
_ATOM_KEYS = ("atom", "atomName", "name")
_SERIAL_KEYS = ("serial", "atomSerial", "serialNumber", "atomId", "index", "atom_index", "atomIndex")


@dataclass(frozen=True, slots=True)
class ParsedLabel:
    serial: Optional[str] = None
    chain: Optional[str] = None
    resno: Optional[str] = None
    atom_name: Optional[str] = None
    res_name: Optional[str] = None
    # Which rule produced the result: colon, slash, serial, fallback or None
    dialect: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return self.dialect in ("colon", "slash")

    @property
    def residue_key(self) -> Optional[tuple]:
        if self.chain and self.resno:
            return (self.chain, self.resno)
        return None


def _digits(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value if value.isdigit() else None


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_colon(raw: str) -> Optional[ParsedLabel]:
    parts = raw.split(":")
    if len(parts) != 4:
        return None
    chain_atom = parts[1].split(".", 1)
    chain = _blank_to_none(chain_atom[0])
    if chain is None:
        return None
    atom = _blank_to_none(chain_atom[1]) if len(chain_atom) > 1 else None
    return ParsedLabel(
        serial=_digits(parts[0]),
        chain=chain,
        resno=_digits(parts[3]),
        atom_name=atom,
        res_name=_blank_to_none(parts[2]),
        dialect="colon",
    )


def _parse_slash(raw: str) -> Optional[ParsedLabel]:
    parts = [p.strip() for p in raw.strip().split("/")]
    if not 2 <= len(parts) <= 5:
        return None
    chain = parts[0]
    if len(chain) != 1 or not chain.isalnum():
        return None
    resno = _digits(parts[1])
    if resno is None or len(resno) > 5:
        return None
    parts += [""] * (5 - len(parts))
    return ParsedLabel(
        serial=_digits(parts[4]),
        chain=chain,
        resno=resno,
        atom_name=parts[3] or None,
        res_name=parts[2] or None,
        dialect="slash",
    )


def _parse_fallback(raw: str) -> ParsedLabel:
    m = _RESNO_CHAIN_RE.match(raw)
    if m:
        return ParsedLabel(chain=m.group(2), resno=m.group(1), dialect="fallback")
    m = _CHAIN_RESNO_RE.match(raw)
    if m:
        return ParsedLabel(chain=m.group(1), resno=m.group(2), dialect="fallback")

    serial = chain = atom = res_name = resno = None
    m = _GENERIC_RE.search(raw)
    if m:
        serial, chain, atom, res_name, resno = m.groups()
    if resno is None:
        for pattern, chain_group, resno_group in _RESIDUE_SEARCH:
            rm = pattern.search(raw)
            if rm:
                resno = rm.group(resno_group)
                chain = chain or rm.group(chain_group)
                break
    if not any((serial, chain, atom, res_name, resno)):
        return ParsedLabel()
    return ParsedLabel(
        serial=_digits(serial),
        chain=chain,
        resno=_digits(resno),
        atom_name=atom,
        res_name=res_name,
        dialect="fallback",
    )


@lru_cache(maxsize=16384)
def _parse_text(raw: str) -> ParsedLabel:
    text = raw.strip()
    if not text:
        return ParsedLabel()
    if text.isdigit():
        return ParsedLabel(serial=text, dialect="serial")
    return _parse_colon(text) or _parse_slash(text) or _parse_fallback(text)


def parse_label(label: Any) -> ParsedLabel:
    """Parse a node label into its structured fields (best effort)."""
    if label is None:
        return ParsedLabel()
    if isinstance(label, bool):
        return ParsedLabel()
    return _parse_text(str(label))


def first_alpha(text: str) -> str:
    m = _FIRST_ALPHA_RE.search(text or "")
    return m.group(0) if m else ""


def role_from_label(label: str) -> str:
    """Chain role of a node label.

    The chain of a well-formed colon/slash label wins; otherwise the first
    alphabetic character of the label is used.
    """
    parsed = parse_label(label)
    if parsed.is_structured and parsed.chain:
        return parsed.chain
    return first_alpha(label)


def format_label(parsed: ParsedLabel, role: Optional[str] = None) -> str:
    """Render fields in the slash dialect (``role/resno/resName/atom/serial``)."""
    parts = [role or parsed.chain, parsed.resno, parsed.res_name, parsed.atom_name, parsed.serial]
    return "/".join(str(p) for p in parts if p)


def _pick(raw: Mapping[str, Any], keys) -> Optional[str]:
    for k in keys:
        v = raw.get(k)
        if isinstance(v, bool):
            continue
        if isinstance(v, str) and v.strip():
            return v.strip()
        if isinstance(v, (int, float)) and v == v:
            return str(int(v)) if isinstance(v, float) and v.is_integer() else str(v)
    return None


def label_from_fields(raw: Mapping[str, Any]) -> Optional[str]:
    """Synthesize a slash-dialect label from structured node/atom fields."""
    serial = _digits(_pick(raw, _SERIAL_KEYS))
    parsed = ParsedLabel(
        serial=serial,
        chain=_pick(raw, _ROLE_KEYS),
        resno=_pick(raw, _RESNO_KEYS),
        atom_name=_pick(raw, _ATOM_KEYS),
        res_name=_pick(raw, _RESNAME_KEYS),
    )
    text = format_label(parsed)
    return text or None
