import base64
import binascii
import logging
from typing import Annotated, List

from pydantic import BaseModel, ConfigDict, StringConstraints, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_OLDEST_HISTORY = 60
DEFAULT_SLOW_THRESHOLD = 5000

NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=128)]
LocatorStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def decode_locator(locator: str) -> str:
    """Expand `scheme://<base64>` into `scheme://<decoded>`.

    Share links often carry the credentials and address base64-encoded after
    the scheme. Anything that is not such a form is returned unchanged.
    """
    if "@" in locator:
        return locator
    scheme, sep, rest = locator.partition("//")
    if not sep or not rest:
        raise ValueError(f"invalid url: {locator}")
    try:
        decoded = base64.b64decode(rest, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return locator
    if "@" not in decoded:
        return locator
    converted = scheme + sep + decoded
    logger.info("converted %s -> %s", locator, converted)
    return converted


def _positive_or(v, default):
    """`default` for missing or non-positive numbers; other values go to pydantic."""
    if v is None:
        return default
    try:
        n = int(v)
    except (TypeError, ValueError):
        return v
    return default if n <= 0 else v


class SiteConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: NameStr
    url: LocatorStr

    @field_validator("name")
    @classmethod
    def _csv_safe(cls, v: str) -> str:
        if any(c in v for c in ",\r\n"):
            raise ValueError("name may not contain commas or line breaks")
        return v

    @field_validator("url")
    @classmethod
    def _decode(cls, v: str) -> str:
        return decode_locator(v)


class BoardConfig(BaseModel):
    http_port: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    oldest_history: int = DEFAULT_OLDEST_HISTORY
    slow_threshold: int = DEFAULT_SLOW_THRESHOLD
    sites: List[SiteConfig] = []

    @field_validator("http_port", mode="before")
    @classmethod
    def _port_as_str(cls, v):
        # YAML hands bare ports over as ints
        return str(v) if isinstance(v, int) else v

    @field_validator("http_port")
    @classmethod
    def _port_number(cls, v: str) -> str:
        if not v.rpartition(":")[2].isdigit():
            raise ValueError(f"http_port must end with a port number: {v}")
        return v

    @field_validator("oldest_history", mode="before")
    @classmethod
    def _default_history(cls, v):
        return _positive_or(v, DEFAULT_OLDEST_HISTORY)

    @field_validator("slow_threshold", mode="before")
    @classmethod
    def _default_threshold(cls, v):
        return _positive_or(v, DEFAULT_SLOW_THRESHOLD)

    @model_validator(mode="after")
    def _unique_names(self):
        seen = set()
        for site in self.sites:
            if site.name in seen:
                raise ValueError(f"name must be unique: {site.name}")
            seen.add(site.name)
        return self

    @property
    def names(self) -> tuple:
        return tuple(s.name for s in self.sites)

    @property
    def listen(self) -> tuple:
        """(host, port) to bind; a bare port listens on all interfaces."""
        host, _, port = self.http_port.rpartition(":")
        return (host or "0.0.0.0", int(port))
