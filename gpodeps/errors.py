from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .models import RegistrySetting


class GPODepsError(Exception):
    pass


class PolicyFileError(GPODepsError):
    """Raised while decoding a binary registry-policy file.

    ``settings`` holds every entry decoded before the failure and ``offset`` is
    absolute from the start of the buffer.
    """

    kind = "PolicyFileError"

    def __init__(self, message: str, *, offset: int, settings: Sequence[RegistrySetting] = (), version: Optional[int] = None):
        super().__init__(f"{message} (offset {offset})")
        self.offset = offset
        self.settings = list(settings)
        self.version = version


class BadSignatureError(PolicyFileError):
    kind = "BadSignature"


class TruncatedError(PolicyFileError):
    kind = "Truncated"


class MalformedEntryError(PolicyFileError):
    kind = "MalformedEntry"


class MalformedXmlError(GPODepsError):
    kind = "MalformedXml"

    def __init__(self, path: Optional[Path], detail: str):
        where = str(path) if path else "<document>"
        super().__init__(f"{where}: {detail}")
        self.path = path
        self.detail = detail


class CatalogError(GPODepsError):
    kind = "CatalogError"


class LocaleNotFoundError(CatalogError):
    kind = "LocaleNotFound"

    def __init__(self, root: Path, locale: str):
        super().__init__(f"Locale directory '{locale}' not found under {root}")
        self.root = root
        self.locale = locale


class ResolutionError(GPODepsError):
    kind = "ResolutionError"


@dataclass(frozen=True)
class CatalogWarning:
    kind: str
    path: Optional[Path]
    message: str
