"""
Connectivity probe.

One probe is one HTTPS GET against the target with browser-like headers. The
result is classified into a ProbeOutcome from raw transport behaviour,
redirect targets and the served content. Transport failures never escape:
they are converted into an outcome.
"""

import codecs
import errno
import logging
import socket
import ssl
import time
from typing import Callable, Iterator, Optional, Tuple
from urllib.parse import urljoin, urlsplit

import charset_normalizer
import requests

from .config import TesterConfig
from .domains import registrable_domain, split_host_port
from .errors import ProbeTransportError
from .models import ProbeOutcome, ProbeReport

LOG = logging.getLogger("PreconfigTester.Network")

# Chrome 122 on Windows 10. No brotli: requests cannot decode it without an
# optional package, and block-page detection needs the plain body.
HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Cache-Control": "max-age=0",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "DNT": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Sec-Ch-Ua": '"Chromium";v="122", "Not(A:Brand";v="24", "Google Chrome";v="122"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
}

# === Block-page signatures ===
BLOCK_URL_MARKERS = (
    "block",
    "blocked",
    "warning",
    "restriction",
    "restricted",
    "rkn",
    "lawfilter",
    "zapret-info",
    "eais",
    "warning.rt.ru",
)

BLOCK_BODY_MARKERS = (
    "заблокирован",
    "доступ ограничен",
    "access denied",
    "blocked by",
    "webmaster@rkn.gov.ru",
    "роскомнадзор",
    "единый реестр",
    "eais.rkn.gov.ru",
)

# === Transport error signatures ===
_NO_CONNECTION_ERRNOS = {
    errno.ENETUNREACH,
    errno.EHOSTUNREACH,
    errno.ENETDOWN,
    10050,  # WSAENETDOWN
    10051,  # WSAENETUNREACH
    10065,  # WSAEHOSTUNREACH
}
_RESET_ERRNOS = {
    errno.ECONNRESET,
    errno.ECONNREFUSED,
    errno.ECONNABORTED,
    errno.EPIPE,
    10053,  # WSAECONNABORTED
    10054,  # WSAECONNRESET
    10061,  # WSAECONNREFUSED
}
_TIMEOUT_ERRNOS = {errno.ETIMEDOUT, 10060}  # WSAETIMEDOUT

_TIMEOUT_TEXT = ("timed out", "timeout")
_RESET_TEXT = (
    "connection refused",
    "connection reset",
    "connection aborted",
    "forcibly closed",
    "remote end closed",
    "broken pipe",
)
_NO_CONNECTION_TEXT = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "no such host",
    "name resolution",
    "failed to resolve",
    "network is unreachable",
    "no route to host",
)


def is_block_page_url(url: str) -> bool:
    url_lower = url.lower()
    return any(marker in url_lower for marker in BLOCK_URL_MARKERS)


def is_block_page_content(body: str) -> bool:
    body_lower = body.lower()
    return any(marker in body_lower for marker in BLOCK_BODY_MARKERS)


def is_block_page_redirect(origin_url: str, target_url: str) -> bool:
    """A redirect off the origin's registrable domain to a block-page URL."""
    origin = registrable_domain(urlsplit(origin_url).hostname or "")
    target = registrable_domain(urlsplit(target_url).hostname or "")
    return origin != target and is_block_page_url(target_url)


def declared_charset(content_type: Optional[str]) -> Optional[str]:
    """The ``charset`` parameter of a Content-Type header, if it names one."""
    if not content_type:
        return None
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset":
            return value.strip().strip("'\"") or None
    return None


def decode_body(data: bytes, content_type: Optional[str] = None) -> str:
    """
    Decodes a possibly truncated response body.

    A charset named in Content-Type is used as is. Without one the body is
    read as UTF-8, and charset_normalizer guesses only when that fails.
    The ISO-8859-1 fallback requests assigns to text/* is ignored.
    """
    charset = declared_charset(content_type)
    if charset:
        try:
            return data.decode(charset, errors="replace")
        except LookupError:
            LOG.debug(f"Unknown charset {charset!r} in Content-Type, detecting instead")
    try:
        # Incremental so a multi-byte sequence cut at the inspect limit is not an error
        return codecs.getincrementaldecoder("utf-8")().decode(data)
    except UnicodeDecodeError:
        pass
    best = charset_normalizer.from_bytes(data).best()
    if best is not None:
        LOG.debug(f"Body charset detected as {best.encoding}")
        return data.decode(best.encoding, errors="replace")
    return data.decode("utf-8", errors="replace")


def build_url(domain: str) -> str:
    """``discord.com:443`` -> ``https://discord.com``. Raises InvalidInputError."""
    host, port = split_host_port(domain)
    return f"https://{host}" if port == 443 else f"https://{host}:{port}"


def _exception_chain(exc: BaseException, max_depth: int = 10) -> Iterator[BaseException]:
    """
    Walks an exception and everything it wraps: causes, contexts, urllib3
    ``reason`` attributes and exceptions passed as arguments.
    """
    seen = set()
    pending = [(exc, 0)]
    while pending:
        current, depth = pending.pop(0)
        if current is None or id(current) in seen or depth > max_depth:
            continue
        seen.add(id(current))
        yield current
        linked = [current.__cause__, current.__context__, getattr(current, "reason", None)]
        linked.extend(arg for arg in current.args if isinstance(arg, BaseException))
        pending.extend((item, depth + 1) for item in linked if isinstance(item, BaseException))


def classify_transport_error(exc: BaseException) -> Tuple[ProbeOutcome, bool]:
    """
    Maps a transport failure to an outcome.

    Returns:
        (outcome, unclassified). Errors matching no signature map to
        CONNECTION_RESET with ``unclassified`` set.
    """
    chain = list(_exception_chain(exc))

    if any(isinstance(e, socket.gaierror) for e in chain):
        return ProbeOutcome.NO_CONNECTION, False
    if any(isinstance(e, (requests.Timeout, socket.timeout, TimeoutError)) for e in chain):
        return ProbeOutcome.TIMEOUT, False
    if any(
        isinstance(e, (ConnectionResetError, ConnectionRefusedError, ConnectionAbortedError, BrokenPipeError))
        for e in chain
    ):
        return ProbeOutcome.CONNECTION_RESET, False

    for e in chain:
        code = getattr(e, "winerror", None) or getattr(e, "errno", None)
        if code in _NO_CONNECTION_ERRNOS:
            return ProbeOutcome.NO_CONNECTION, False
        if code in _TIMEOUT_ERRNOS:
            return ProbeOutcome.TIMEOUT, False
        if code in _RESET_ERRNOS:
            return ProbeOutcome.CONNECTION_RESET, False

    text = " ".join(str(e) for e in chain).lower()
    if any(marker in text for marker in _NO_CONNECTION_TEXT):
        return ProbeOutcome.NO_CONNECTION, False
    if any(marker in text for marker in _TIMEOUT_TEXT):
        return ProbeOutcome.TIMEOUT, False
    if any(marker in text for marker in _RESET_TEXT):
        return ProbeOutcome.CONNECTION_RESET, False

    # TLS handshake broken by a middlebox
    if any(isinstance(e, (requests.exceptions.SSLError, ssl.SSLError)) for e in chain):
        return ProbeOutcome.CONNECTION_RESET, False

    LOG.debug(f"Unclassified transport error: {type(exc).__name__}: {exc}")
    return ProbeOutcome.CONNECTION_RESET, True


class ConnectivityProbe:
    """Issues one HTTPS request per probe and classifies the outcome."""

    def __init__(
        self,
        config: TesterConfig,
        session_factory: Callable[[], requests.Session] = requests.Session,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._session_factory = session_factory
        self._sleep = sleep
        self._clock = clock

    def probe(self, domain: str) -> ProbeOutcome:
        return self.inspect(domain).outcome

    def is_directly_reachable(self, domain: str) -> bool:
        return self.probe(domain) is ProbeOutcome.SUCCESS

    def inspect(self, domain: str) -> ProbeReport:
        """
        Runs one probe against ``domain`` (``host[:port]``).

        The settle delays before and after let the previous connection tear
        down completely, so back-to-back probes on the same port do not
        interfere.

        Raises:
            InvalidInputError: if ``domain`` is malformed.
        """
        url = build_url(domain)
        self._sleep(self.config.probe_settle_before)
        try:
            report = self._attempt(url)
        finally:
            self._sleep(self.config.probe_settle_after)

        level = logging.INFO if report.is_success else logging.WARNING
        LOG.log(level, f"Probe {url}: {report.outcome.value} ({report.detail})")
        return report

    def _attempt(self, url: str) -> ProbeReport:
        start = self._clock()
        # A fresh session per probe: a reused TLS session can mask a block.
        session = self._session_factory()
        try:
            session.headers.update(HEADERS)
            session.trust_env = False
            return self._follow(session, url, start)
        except ProbeTransportError as e:
            return ProbeReport(
                outcome=e.outcome,
                url=url,
                detail=str(e),
                unclassified=e.unclassified,
                elapsed=self._clock() - start,
            )
        finally:
            session.close()

    def _fetch(self, session: requests.Session, url: str) -> requests.Response:
        LOG.debug(f"GET {url}")
        timeout = self.config.probe_timeout
        try:
            return session.get(
                url, timeout=(timeout, timeout), allow_redirects=False, stream=True
            )
        except (requests.RequestException, OSError) as e:
            outcome, unclassified = classify_transport_error(e)
            raise ProbeTransportError(
                f"{type(e).__name__}: {e}", outcome, unclassified=unclassified
            ) from e

    def _read_body(self, response: requests.Response) -> str:
        limit = self.config.body_inspect_limit
        data = b""
        try:
            for chunk in response.iter_content(chunk_size=8192):
                data += chunk
                if len(data) >= limit:
                    break
        except (requests.RequestException, OSError) as e:
            raise ProbeTransportError(
                f"Error reading response body: {type(e).__name__}: {e}",
                ProbeOutcome.CONNECTION_RESET,
            ) from e
        return decode_body(data[:limit], response.headers.get("content-type"))

    def _follow(self, session: requests.Session, url: str, start: float) -> ProbeReport:
        """Follows redirects by hand so every Location is checked before use."""
        current = url
        for hop in range(self.config.max_redirects + 1):
            response = self._fetch(session, current)
            try:
                status = response.status_code
                location = response.headers.get("location")

                if 300 <= status < 400 and location:
                    target = urljoin(current, location)
                    LOG.debug(f"Redirected from {current} to {target} (HTTP {status})")
                    if is_block_page_redirect(url, target):
                        return self._report(
                            ProbeOutcome.CENSORSHIP_REDIRECT,
                            url,
                            start,
                            final_url=target,
                            status_code=status,
                            detail=f"redirect to block page {target}",
                        )
                    current = target
                    continue

                if 200 <= status < 400:
                    body = self._read_body(response)
                    if is_block_page_content(body):
                        return self._report(
                            ProbeOutcome.CENSORSHIP_REDIRECT,
                            url,
                            start,
                            final_url=current,
                            status_code=status,
                            detail="block page content",
                        )
                    return self._report(
                        ProbeOutcome.SUCCESS,
                        url,
                        start,
                        final_url=current,
                        status_code=status,
                        detail=f"HTTP {status}",
                    )

                return self._report(
                    ProbeOutcome.CONNECTION_RESET,
                    url,
                    start,
                    final_url=current,
                    status_code=status,
                    detail=f"HTTP error status {status}",
                )
            finally:
                response.close()

        return self._report(
            ProbeOutcome.CONNECTION_RESET,
            url,
            start,
            final_url=current,
            detail=f"more than {self.config.max_redirects} redirects",
        )

    def _report(
        self,
        outcome: ProbeOutcome,
        url: str,
        start: float,
        final_url: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: str = "",
    ) -> ProbeReport:
        return ProbeReport(
            outcome=outcome,
            url=url,
            final_url=final_url,
            status_code=status_code,
            detail=detail,
            elapsed=self._clock() - start,
        )
