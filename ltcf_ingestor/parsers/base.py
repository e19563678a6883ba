import re
from typing import Optional, Tuple

_WS = re.compile(r"\s+")

NAMED_SECTIONS = ("ADMIN", "PATIENT", "ENCOUNTER")
FOLDER_UNSAFE_CHARS = '/\\:*?"<>|'


def is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def normalize_key(key: str) -> str:
    return key.strip().casefold()


def normalize_section(name: str) -> str:
    """'  section   a ' -> 'SECTION A'."""
    return _WS.sub(" ", name.strip()).upper()


def split_pair(line: str) -> Optional[Tuple[str, str]]:
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip()


def section_header(line: str) -> Optional[str]:
    s = line.strip()
    if len(s) > 2 and s.startswith("[") and s.endswith("]"):
        return normalize_section(s[1:-1])
    return None


def is_folder_safe(value: Optional[str]) -> bool:
    """Un único nombre de carpeta: sin separadores, sin '.' ni '..'."""
    if is_blank(value):
        return False
    v = value.strip()
    return v not in (".", "..") and not any(ch in v for ch in FOLDER_UNSAFE_CHARS)
