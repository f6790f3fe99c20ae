"""Read-only HTTP(S) object store for documents served by URL.

- Allowed URL schemes: https:// and http:// only.
- SSRF guard: private/loopback/link-local ranges are blocked before connecting
  (disable with ``allow_private=True`` for self-hosted buckets).
- Timeout: 120 seconds (connect + read). Max redirects: 3. Max body: 50 MB.
"""

from __future__ import annotations

import ipaddress
import socket
import urllib.error
import urllib.parse
import urllib.request

from kbcore.errors import ObjectFetchFailed

_USER_AGENT = "kbcore/0.1"
_MAX_BYTES = 50 * 1024 * 1024
_TIMEOUT = 120
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}


class HttpObjectStore:
    """Fetch objects by URL. ``resolve_download_url`` joins paths onto *base_url*."""

    def __init__(
        self,
        base_url: str = "",
        timeout: float = _TIMEOUT,
        max_bytes: int = _MAX_BYTES,
        allow_private: bool = False,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_bytes = max_bytes
        self._allow_private = allow_private

    def resolve_download_url(self, path: str) -> str:
        if not self._base_url:
            raise ValueError("HttpObjectStore has no base_url to resolve paths against")
        return f"{self._base_url}/{urllib.parse.quote(path.lstrip('/'))}"

    def fetch(self, ref: str) -> bytes:
        url = ref if "://" in ref else self.resolve_download_url(ref)
        self._validate_scheme(url)
        if not self._allow_private:
            self._check_ssrf(url)

        request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))
        try:
            with opener.open(request, timeout=self._timeout) as response:
                body = response.read(self._max_bytes + 1)
        except (urllib.error.URLError, OSError) as exc:
            raise ObjectFetchFailed(f"failed to fetch '{url}': {exc}") from exc

        if len(body) > self._max_bytes:
            raise ObjectFetchFailed(
                f"object at '{url}' exceeds {self._max_bytes // (1024 * 1024)} MB limit"
            )
        return body

    @staticmethod
    def _validate_scheme(url: str) -> None:
        scheme = urllib.parse.urlparse(url).scheme
        if scheme not in _ALLOWED_SCHEMES:
            raise ObjectFetchFailed(
                f"unsupported URL scheme '{scheme}'; only https:// and http:// are allowed"
            )

    @staticmethod
    def _check_ssrf(url: str) -> None:
        """Resolve the hostname and block private/reserved IP ranges."""
        hostname = urllib.parse.urlparse(url).hostname
        if not hostname:
            raise ObjectFetchFailed(f"URL has no hostname: {url}")
        try:
            addrinfos = socket.getaddrinfo(hostname, None)
        except socket.gaierror as exc:
            raise ObjectFetchFailed(f"DNS resolution failed for '{hostname}': {exc}") from exc

        for addrinfo in addrinfos:
            try:
                ip = ipaddress.ip_address(addrinfo[4][0])
            except ValueError:
                continue
            if (
                ip.is_private
                or ip.is_loopback
                or ip.is_link_local
                or ip.is_reserved
                or ip.is_multicast
                or ip.is_unspecified
            ):
                raise ObjectFetchFailed(
                    f"URL resolves to private address ({ip}); internal addresses are not allowed"
                )


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise an error after more than *max_redirects* redirects."""

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise urllib.error.URLError(
                f"too many redirects (>{self._max_redirects}) for '{req.full_url}'"
            )
        return super().redirect_request(req, fp, code, msg, headers, newurl)
