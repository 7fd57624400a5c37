# chempal/storage/http_cache.py

"""Content-addressed HTTP response cache.

Requests are keyed by an MD5 over method, host, path, normalised query
parameters, a small header subset and the body.  Entries live in an
in-memory LRU with a TTL and can optionally be mirrored to
``<cache_dir>/<hostname>/<hash>.json`` so that repeated queries replay
offline.
"""

import base64
import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit

from chempal.config.settings import Settings

logger = logging.getLogger("chempal.cache")

# Request headers that change what the server returns.
_KEY_HEADERS: tuple[str, ...] = ("accept", "content-type")


@dataclass(frozen=True)
class HttpRequest:
    """An outbound request description, independent of transport."""

    method: str
    url: str
    params: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    body: bytes | str | dict[str, Any] | list[Any] | None = None

    def full_url(self) -> str:
        """URL with *params* merged into its query string."""
        if not self.params:
            return self.url
        parts = urlsplit(self.url)
        query = parse_qsl(parts.query, keep_blank_values=True)
        query.extend((k, str(v)) for k, v in self.params.items())
        return parts._replace(query=urlencode(query)).geturl()

    def body_bytes(self) -> bytes:
        if self.body is None:
            return b""
        if isinstance(self.body, bytes):
            return self.body
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return json.dumps(self.body, sort_keys=True, separators=(",", ":")).encode()


@dataclass
class HttpResponse:
    """A fully buffered response.

    The body is held as bytes, so reading :attr:`text` or calling
    :meth:`json` any number of times returns the same content.
    """

    status_code: int
    url: str
    content: bytes
    headers: dict[str, str] = field(default_factory=dict)
    from_cache: bool = False

    @classmethod
    def from_transport(cls, resp: Any) -> "HttpResponse":
        """Wrap a curl_cffi/requests-style response object."""
        return cls(
            status_code=int(resp.status_code),
            url=str(resp.url),
            content=bytes(resp.content or b""),
            headers={k.lower(): v for k, v in dict(resp.headers).items()},
        )

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def text(self) -> str:
        return self.content.decode(self.charset, errors="replace")

    def json(self) -> Any:
        return json.loads(self.text)

    @property
    def charset(self) -> str:
        for part in self.content_type.split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                return value.strip('"')
        return "utf-8"


@dataclass(frozen=True)
class RequestHash:
    """Cache key for one request."""

    hash: str
    file: str
    url: str


@dataclass(frozen=True)
class CachedBody:
    content_type: str
    content: str
    encoding: str = "text"  # "text" or "base64"


@dataclass(frozen=True)
class CachableResponse:
    """Serialised snapshot of a response, safe to store or replay."""

    hash: str
    data: CachedBody
    status_code: int = 200
    url: str = ""

    def to_response(self) -> HttpResponse:
        response = HttpResponse(
            status_code=self.status_code,
            url=self.url,
            content=b"",
            headers={"content-type": self.data.content_type},
            from_cache=True,
        )
        if self.data.encoding == "base64":
            response.content = base64.b64decode(self.data.content)
        else:
            response.content = self.data.content.encode(
                response.charset, errors="replace"
            )
        return response

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CachableResponse":
        return cls(
            hash=raw["hash"],
            data=CachedBody(**raw["data"]),
            status_code=int(raw.get("status_code", 200)),
            url=str(raw.get("url", "")),
        )


def get_request_hash(request: HttpRequest) -> RequestHash:
    """Derive the deterministic cache key for *request*."""
    full_url = request.full_url()
    parts = urlsplit(full_url)
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    headers = {k.lower(): v for k, v in (request.headers or {}).items()}
    header_key = "".join(
        f"{name}:{headers[name]};" for name in _KEY_HEADERS if name in headers
    )
    host = parts.hostname or "_"
    digest = hashlib.md5(usedforsecurity=False)
    digest.update(request.method.upper().encode())
    digest.update(host.encode())
    digest.update(parts.path.encode())
    digest.update(query.encode())
    digest.update(header_key.encode())
    digest.update(request.body_bytes())
    hexdigest = digest.hexdigest()
    return RequestHash(hash=hexdigest, file=f"{host}/{hexdigest}.json", url=full_url)


def get_cachable_response(
    request: HttpRequest, response: HttpResponse,
) -> CachableResponse:
    """Serialise *response* for caching without altering it.

    JSON and text bodies are stored as text; anything else is base64.
    """
    key = get_request_hash(request)
    content_type = response.content_type or "application/octet-stream"
    body = bytes(response.content)
    mime = content_type.split(";")[0].strip().lower()
    is_text = (
        mime.startswith("text/")
        or mime.endswith("json")
        or mime.endswith("xml")
        or mime == "application/javascript"
    )
    if is_text:
        cached = CachedBody(
            content_type=content_type,
            content=body.decode(response.charset, errors="replace"),
        )
    else:
        cached = CachedBody(
            content_type=content_type,
            content=base64.b64encode(body).decode("ascii"),
            encoding="base64",
        )
    return CachableResponse(
        hash=key.hash,
        data=cached,
        status_code=response.status_code,
        url=response.url,
    )


@dataclass
class _Entry:
    value: CachableResponse
    stored_at: float


class HttpCache:
    """LRU + TTL response cache, optionally mirrored to disk."""

    def __init__(
        self,
        maxsize: int | None = None,
        ttl: float | None = None,
        cache_dir: Path | None = None,
    ) -> None:
        self.maxsize = maxsize if maxsize is not None else Settings.HTTP_CACHE_SIZE
        self.ttl = ttl if ttl is not None else Settings.HTTP_CACHE_TTL
        self.cache_dir = cache_dir if cache_dir is not None else Settings.HTTP_CACHE_DIR
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request: object) -> bool:
        if not isinstance(request, HttpRequest):
            return False
        return get_request_hash(request).hash in self._entries

    def get(self, request: HttpRequest) -> HttpResponse | None:
        """Return a replayed response for *request*, or ``None``."""
        key = get_request_hash(request)
        entry = self._entries.get(key.hash)
        now = time.time()
        if entry is not None and now - entry.stored_at > self.ttl:
            del self._entries[key.hash]
            entry = None
        if entry is None:
            entry = self._load_from_disk(key, now)
        if entry is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key.hash)
        self.hits += 1
        logger.debug("Cache hit %s %s", request.method, key.url)
        return entry.value.to_response()

    def put(self, request: HttpRequest, response: HttpResponse) -> CachableResponse:
        """Store a snapshot of *response* keyed by *request*."""
        cachable = get_cachable_response(request, response)
        self._remember(cachable.hash, _Entry(cachable, time.time()))
        self._write_to_disk(get_request_hash(request), cachable)
        return cachable

    def _remember(self, key: str, entry: _Entry) -> None:
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self.maxsize:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted %s", evicted)

    def clear(self) -> None:
        """Drop all in-memory entries (disk mirror is left intact)."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    # ── Disk mirror ──────────────────────────────────────

    def _load_from_disk(self, key: RequestHash, now: float) -> _Entry | None:
        if self.cache_dir is None:
            return None
        path = self.cache_dir / key.file
        if not path.is_file():
            return None
        if now - path.stat().st_mtime > self.ttl:
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            value = CachableResponse.from_dict(raw)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Unreadable cache file %s: %s", path, exc)
            return None
        entry = _Entry(value, path.stat().st_mtime)
        self._remember(key.hash, entry)
        return entry

    def _write_to_disk(self, key: RequestHash, value: CachableResponse) -> None:
        if self.cache_dir is None:
            return
        path = self.cache_dir / key.file
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(value.to_dict(), ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("Could not write cache file %s: %s", path, exc)
