"""Error taxonomy for the userscript stack."""

from enum import Enum
from typing import Optional


class UserScriptsError(Exception):
    """Base class for all errors raised by the engine."""


class SyntaxPart(str, Enum):
    """Part of the script text that is malformed."""

    OPENING = "opening"
    CONFIGURATION = "configuration"
    CLOSING = "closing"
    BODY = "body"


class MetadataSyntaxError(UserScriptsError):
    """The header block is missing a marker or a malformed line, or no code follows it."""

    def __init__(self, part: SyntaxPart, line: Optional[str] = None):
        self.part = part
        self.line = line
        if part == SyntaxPart.OPENING:
            message = "Unable to find the opening of the metadata block"
        elif part == SyntaxPart.CLOSING:
            message = "Unable to find the closing of the metadata block"
        elif part == SyntaxPart.BODY:
            message = "The script has no code after the metadata block"
        else:
            message = f"Invalid metadata line: {line!r}"
        super().__init__(message)

    def __eq__(self, other):
        if not isinstance(other, MetadataSyntaxError):
            return NotImplemented
        return self.part == other.part and self.line == other.line

    def __hash__(self):
        return hash((self.part, self.line))


class DecodeReason(str, Enum):
    """Why a well-formed header block could not be projected."""

    KEY_NOT_FOUND = "key_not_found"
    TYPE_MISMATCH = "type_mismatch"


class MetadataDecodeError(UserScriptsError):
    """A required key is missing or its value has the wrong type."""

    def __init__(self, reason: DecodeReason, key: str, detail: str = ""):
        self.reason = reason
        self.key = key
        if reason == DecodeReason.KEY_NOT_FOUND:
            message = f"The key '{key}' does not exist"
        else:
            message = f"The value of '{key}' has an unexpected type"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TransportError(UserScriptsError):
    """A fetch returned a non-success HTTP status."""

    def __init__(self, status_code: int, url: str = ""):
        self.status_code = status_code
        self.url = url
        super().__init__(f"HTTP {status_code} for {url}" if url else f"HTTP {status_code}")


class FileSystemError(UserScriptsError):
    """Moving, removing or creating a file failed."""


class ResourceAccessError(UserScriptsError):
    """The external folder is inaccessible or permission was revoked."""
