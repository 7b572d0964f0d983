"""
Network activity captured from the browser page.

Playwright emits ``request``, ``response``, ``requestfinished`` and
``requestfailed`` events; ``NetworkEventLog.attach`` subscribes to them and
keeps one ``NetworkLogEntry`` per request in arrival order. Response bodies
are fetched lazily, only when a caller asks for them.
"""

import dataclasses
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from webpilot.agents.exceptions import ToolArgumentError, ToolExecutionError

logger = logging.getLogger(__name__)

RESOURCE_TYPES = {
    "document": "document",
    "stylesheet": "stylesheet",
    "style": "stylesheet",
    "image": "image",
    "media": "media",
    "font": "font",
    "script": "script",
    "texttrack": "texttrack",
    "xhr": "xhr",
    "fetch": "fetch",
    "prefetch": "prefetch",
    "eventsource": "eventsource",
    "websocket": "websocket",
    "manifest": "manifest",
    "signedexchange": "signedexchange",
    "ping": "ping",
    "cspviolationreport": "cspviolationreport",
    "preflight": "preflight",
    "other": "other",
}

_MIME_EXTENSIONS = (
    (("json",), "json"),
    (("html",), "html"),
    (("javascript",), "js"),
    (("css",), "css"),
    (("png",), "png"),
    (("jpeg", "jpg"), "jpg"),
    (("gif",), "gif"),
    (("svg",), "svg"),
    (("pdf",), "pdf"),
    (("mp3",), "mp3"),
)

_MIME_EXTENSIONS_TAIL = (
    (("wav",), "wav"),
    (("mp4",), "mp4"),
    (("ogg",), "ogg"),
    (("zip",), "zip"),
    (("plain", "text"), "txt"),
)

_FILENAME_INVALID = '<>:"/\\|?*'


@dataclasses.dataclass
class NetworkResponseInfo:
    status: int = 0
    status_text: str = ""
    mime_type: str = ""
    headers: Dict[str, str] = dataclasses.field(default_factory=dict)
    timestamp: Optional[datetime] = None


@dataclasses.dataclass
class NetworkFailureInfo:
    error_text: str = ""
    timestamp: Optional[datetime] = None


@dataclasses.dataclass
class NetworkBody:
    data: bytes = b""
    retrieved_at: Optional[datetime] = None


@dataclasses.dataclass
class NetworkLogEntry:
    """Everything observed about one request."""

    request_id: str
    url: str = ""
    method: str = ""
    resource_type: str = ""
    request_headers: Dict[str, str] = dataclasses.field(default_factory=dict)
    request_timestamp: Optional[datetime] = None
    response: Optional[NetworkResponseInfo] = None
    finished_at: Optional[datetime] = None
    failure: Optional[NetworkFailureInfo] = None
    body: Optional[NetworkBody] = None
    # Live Playwright objects; never serialized.
    request_handle: Any = dataclasses.field(default=None, repr=False, compare=False)
    response_handle: Any = dataclasses.field(default=None, repr=False, compare=False)

    def to_summary(self) -> Dict[str, Any]:
        """JSON-friendly view used by ``network_list``."""
        summary: Dict[str, Any] = {
            "request_id": self.request_id,
            "url": self.url,
            "method": self.method,
            "resource_type": self.resource_type,
        }
        if self.request_timestamp:
            summary["timestamp"] = self.request_timestamp.isoformat()
        if self.response is not None:
            summary["status"] = self.response.status
            summary["status_text"] = self.response.status_text
            summary["mime_type"] = self.response.mime_type
        summary["finished"] = self.finished_at is not None
        if self.failure is not None:
            summary["error"] = self.failure.error_text
        summary["has_body"] = self.body is not None
        return summary

    def timestamp(self) -> datetime:
        if self.response and self.response.timestamp:
            return self.response.timestamp
        if self.finished_at:
            return self.finished_at
        return self.request_timestamp or datetime.now()


@dataclasses.dataclass
class NetworkLogFilter:
    """
    Criteria for ``NetworkEventLog.filter_entries``.

    Each populated criterion must match. Within a criterion any value may
    match, except ``text_contains`` where every substring must appear in the
    URL. MIME and status criteria never match entries without a response.
    """

    mime_substrings: List[str] = dataclasses.field(default_factory=list)
    suffixes: List[str] = dataclasses.field(default_factory=list)
    status_codes: List[int] = dataclasses.field(default_factory=list)
    text_contains: List[str] = dataclasses.field(default_factory=list)
    methods: List[str] = dataclasses.field(default_factory=list)
    domains: List[str] = dataclasses.field(default_factory=list)
    resource_types: List[str] = dataclasses.field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            (
                self.mime_substrings,
                self.suffixes,
                self.status_codes,
                self.text_contains,
                self.methods,
                self.domains,
                self.resource_types,
            )
        )

    def matches(self, entry: NetworkLogEntry) -> bool:
        if self.methods and entry.method.lower() not in {m.lower() for m in self.methods}:
            return False

        if self.resource_types and entry.resource_type.lower() not in self.resource_types:
            return False

        if self.mime_substrings:
            if entry.response is None:
                return False
            mime = entry.response.mime_type.lower()
            if not any(s.lower() in mime for s in self.mime_substrings):
                return False

        if self.status_codes:
            if entry.response is None or entry.response.status not in self.status_codes:
                return False

        if self.domains or self.suffixes or self.text_contains:
            parsed = urlparse(entry.url)
            host = parsed.netloc.lower()
            path = parsed.path or entry.url
            if self.domains and not any(d.lower() in host for d in self.domains):
                return False
            if self.suffixes:
                name = os.path.basename(path.rstrip("/")).lower()
                if not any(name.endswith(s.lower()) for s in self.suffixes):
                    return False
            if self.text_contains:
                content = entry.url.lower()
                if not all(t.lower() in content for t in self.text_contains):
                    return False

        return True


def normalize_strings(values: Optional[Iterable[str]]) -> List[str]:
    return [v.strip().lower() for v in values or () if v and v.strip()]


def split_csv(raw: Optional[str]) -> List[str]:
    """Split a comma-separated argument into normalized values."""
    if not raw:
        return []
    return normalize_strings(raw.split(","))


def parse_status_codes(raw: Optional[str]) -> List[int]:
    codes = []
    for value in split_csv(raw):
        try:
            codes.append(int(value))
        except ValueError:
            raise ToolArgumentError(f"invalid status code: {value}", argument="status") from None
    return codes


def normalize_resource_type(raw: str) -> Optional[str]:
    key = raw.strip().lower().replace(" ", "")
    return RESOURCE_TYPES.get(key)


def parse_resource_types(values: Sequence[str]) -> List[str]:
    """
    Map user-supplied resource type names onto canonical names.

    Raises:
        ToolArgumentError: For an unknown type name.
    """
    result = []
    for raw in values:
        if not raw.strip():
            continue
        normalized = normalize_resource_type(raw)
        if normalized is None:
            raise ToolArgumentError(f"unknown resource type: {raw.strip()}", argument="type")
        result.append(normalized)
    return result


# --- Filenames ---


def extension_for_mime(mime: str) -> str:
    """Best-effort file extension (without dot) for a MIME type."""
    lower = (mime or "").strip().lower()
    if not lower:
        return ""
    for needles, ext in _MIME_EXTENSIONS:
        if any(n in lower for n in needles):
            return ext
    if "mpeg" in lower and "audio" in lower:
        return "mp3"
    for needles, ext in _MIME_EXTENSIONS_TAIL:
        if any(n in lower for n in needles):
            return ext
    return ""


def sanitize_filename(name: str) -> str:
    clean = "".join("_" if ch in _FILENAME_INVALID else ch for ch in name).strip()
    return clean or "resource"


def suggest_filename(entry: Optional[NetworkLogEntry], index: int = 0) -> str:
    """Derive a filename from the request URL, falling back to method and id."""
    if entry is None:
        return f"resource_{index}"
    base = os.path.basename(urlparse(entry.url).path).strip().rstrip("/")
    base = base.split("?")[0].split("#")[0]
    if base in ("", ".", "/"):
        safe_id = entry.request_id.replace(".", "_")
        base = f"{entry.method.lower()}_{safe_id}"
    base = sanitize_filename(base)
    if not os.path.splitext(base)[1] and entry.response is not None:
        mapped = extension_for_mime(entry.response.mime_type)
        if mapped:
            base = f"{base}.{mapped}"
    return base or f"resource_{index}"


def ensure_unique_filename(directory: Path, base: str, used: Optional[Dict[str, int]] = None) -> str:
    """Return ``base`` or ``base_N.ext`` so that nothing in ``directory`` is overwritten."""
    used = used if used is not None else {}
    stem, ext = os.path.splitext(base)
    stem = stem or "resource"
    counter = used.get(base, 0)
    while True:
        name = base if counter == 0 else f"{stem}_{counter}{ext}"
        if not (Path(directory) / name).exists():
            used[base] = counter + 1
            return name
        counter += 1


# --- Event log ---


class NetworkEventLog:
    """
    Ordered record of the page's network activity.

    Request ids are assigned locally (``req-1``, ``req-2``...) because
    Playwright request objects carry no stable identifier.
    """

    def __init__(self, enabled: bool = True):
        self._lock = threading.Lock()
        self._entries: Dict[str, NetworkLogEntry] = {}
        self._order: List[str] = []
        self._keys: Dict[int, str] = {}
        self._counter = 0
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> bool:
        """Set the logging flag; returns True when the state changed."""
        with self._lock:
            changed = self._enabled != enabled
            self._enabled = enabled
        logger.info(f"Network activity logging {'enabled' if enabled else 'disabled'}")
        return changed

    def attach(self, page: Any) -> None:
        """Subscribe to a Playwright page's network events."""
        page.on("request", self.record_request)
        page.on("response", self.record_response)
        page.on("requestfinished", self.record_finished)
        page.on("requestfailed", self.record_failure)

    def add_entry(self, entry: NetworkLogEntry) -> None:
        with self._lock:
            if entry.request_id not in self._entries:
                self._order.append(entry.request_id)
            self._entries[entry.request_id] = entry

    def _entry_for(self, request: Any, create: bool = True) -> Optional[NetworkLogEntry]:
        key = self._keys.get(id(request))
        if key is not None:
            return self._entries.get(key)
        if not create:
            return None
        self._counter += 1
        key = f"req-{self._counter}"
        entry = NetworkLogEntry(request_id=key, request_handle=request)
        self._keys[id(request)] = key
        self._entries[key] = entry
        self._order.append(key)
        return entry

    def record_request(self, request: Any) -> None:
        if not self._enabled:
            return
        with self._lock:
            entry = self._entry_for(request)
            entry.url = request.url
            entry.method = request.method
            entry.resource_type = request.resource_type or ""
            entry.request_headers = dict(request.headers or {})
            entry.request_timestamp = datetime.now()

    def record_response(self, response: Any) -> None:
        if not self._enabled:
            return
        with self._lock:
            entry = self._entry_for(response.request)
            headers = {k.lower(): v for k, v in (response.headers or {}).items()}
            mime = headers.get("content-type", "").split(";")[0].strip()
            entry.url = entry.url or response.url
            entry.response = NetworkResponseInfo(
                status=response.status,
                status_text=response.status_text or "",
                mime_type=mime,
                headers=headers,
                timestamp=datetime.now(),
            )
            entry.response_handle = response

    def record_finished(self, request: Any) -> None:
        if not self._enabled:
            return
        with self._lock:
            entry = self._entry_for(request, create=False)
            if entry is not None:
                entry.finished_at = datetime.now()

    def record_failure(self, request: Any) -> None:
        if not self._enabled:
            return
        with self._lock:
            entry = self._entry_for(request)
            entry.failure = NetworkFailureInfo(error_text=request.failure or "", timestamp=datetime.now())

    def store_body(self, request_id: str, data: bytes) -> None:
        with self._lock:
            entry = self._entries.get(request_id)
            if entry is not None:
                entry.body = NetworkBody(data=bytes(data), retrieved_at=datetime.now())

    def entry_by_id(self, request_id: str) -> Optional[NetworkLogEntry]:
        with self._lock:
            return self._entries.get(request_id)

    def entries(self) -> List[NetworkLogEntry]:
        with self._lock:
            return [self._entries[key] for key in self._order if key in self._entries]

    def filter_entries(self, filter_: NetworkLogFilter) -> List[NetworkLogEntry]:
        entries = self.entries()
        if filter_.is_empty():
            return entries
        return [entry for entry in entries if filter_.matches(entry)]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._order.clear()
            self._keys.clear()

    async def fetch_body(self, request_id: str) -> bytes:
        """
        Return the response body for ``request_id``, fetching it on first use.

        Raises:
            ToolArgumentError: If the id is unknown.
            ToolExecutionError: If no body can be retrieved.
        """
        entry = self.entry_by_id(request_id)
        if entry is None:
            raise ToolArgumentError(f"request id not found: {request_id}", argument="request_id")
        if entry.body is not None:
            return entry.body.data
        if entry.response_handle is None:
            raise ToolExecutionError(f"no response body available for {request_id}", tool_name="network_save")
        try:
            data = await entry.response_handle.body()
        except Exception as e:
            raise ToolExecutionError(f"retrieve body for {request_id}: {e}", tool_name="network_save") from e
        self.store_body(request_id, data)
        return data
