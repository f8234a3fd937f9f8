from __future__ import annotations

import io
import re
from pathlib import Path
from typing import Iterable, Optional
from xml.etree import ElementTree as ET

from .errors import MalformedXmlError


_UNICODE_DECL = re.compile(br"encoding\s*=\s*(?P<quote>['\"])unicode(?P=quote)", re.IGNORECASE)
_UNICODE_DECL_TEXT = re.compile(r"encoding\s*=\s*(?P<quote>['\"])unicode(?P=quote)", re.IGNORECASE)


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def is_named(elem: ET.Element, localname: str) -> bool:
    tag = elem.tag
    if not isinstance(tag, str):
        return False
    return local_name(tag).lower() == localname.lower()


def findall_by_localname(root: ET.Element, localname: str) -> list[ET.Element]:
    return [elem for elem in root.iter() if is_named(elem, localname)]


def get_attr(elem: ET.Element, localname: str) -> Optional[str]:
    for k, v in elem.attrib.items():
        if local_name(k) == localname:
            return v
    return None


def get_attr_ci(elem: ET.Element, localname: str) -> Optional[str]:
    wanted = localname.lower()
    for k, v in elem.attrib.items():
        if local_name(k).lower() == wanted:
            return v
    return None


def child_text(elem: ET.Element, localname: str) -> Optional[str]:
    for child in list(elem):
        if is_named(child, localname):
            return safe_str("".join(child.itertext()))
    return None


def safe_str(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    s = " ".join(v.split())
    return s or None


def _fix_unicode_declaration(raw: bytes) -> Optional[bytes]:
    if _UNICODE_DECL.search(raw):
        return _UNICODE_DECL.sub(lambda m: b"encoding=" + m.group("quote") + b"utf-16" + m.group("quote"), raw, count=1)

    for encoding in ("utf-16", "utf-16-le", "utf-16-be"):
        try:
            text = raw.decode(encoding)
        except UnicodeDecodeError:
            continue
        fixed, count = _UNICODE_DECL_TEXT.subn(r"encoding=\g<quote>utf-16\g<quote>", text, count=1)
        if count:
            return fixed.encode(encoding)
    return None


def parse_xml_bytes(raw: bytes, path: Optional[Path] = None) -> ET.Element:
    try:
        return ET.parse(io.BytesIO(raw)).getroot()
    except LookupError:
        fixed = _fix_unicode_declaration(raw)
        if fixed is None:
            raise MalformedXmlError(path, "unsupported encoding declaration")
        try:
            return ET.parse(io.BytesIO(fixed)).getroot()
        except (ET.ParseError, LookupError) as exc:
            raise MalformedXmlError(path, str(exc)) from exc
    except ET.ParseError as exc:
        raise MalformedXmlError(path, str(exc)) from exc


def load_xml(path: Path) -> ET.Element:
    return parse_xml_bytes(path.read_bytes(), path)


def read_text_file(file_path: Path, encodings: Iterable[str]) -> str:
    encodings_list = list(encodings)
    if not encodings_list:
        raise ValueError("encodings must not be empty")

    for encoding in encodings_list:
        try:
            return file_path.read_text(encoding=encoding, errors="strict")
        except UnicodeError:
            continue
    return file_path.read_text(encoding=encodings_list[0], errors="ignore")
