"""HTML preparation and renderer payload helpers.

Pure functions only; anything that touches the network lives in the service
or the adapters.
"""

import re
from datetime import date
from typing import Any, Mapping
from urllib.parse import urljoin, urlparse

DEFAULT_FILENAME = "Proposal"
MAX_FILENAME_LENGTH = 120

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"""\son[a-z]+\s*=\s*("[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE)
_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["'][^>]*>""", re.IGNORECASE)
_URL_LIKE_RE = re.compile(r"^(https?:)?//", re.IGNORECASE)
_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9_-]+")

_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

_MIME_BY_EXTENSION = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "svg": "image/svg+xml",
    "gif": "image/gif",
    "webp": "image/webp",
}


def strip_scripts(html: str) -> str:
    """Remove script elements and inline on* event handler attributes."""
    return _EVENT_HANDLER_RE.sub("", _SCRIPT_RE.sub("", html))


def guess_mime_type(url_path: str, fallback: str = "application/octet-stream") -> str:
    clean = url_path.split("?")[0].split("#")[0]
    if "." not in clean:
        return fallback
    return _MIME_BY_EXTENSION.get(clean.rsplit(".", 1)[-1].lower(), fallback)


def inlineable_images(html: str, origin: str | None) -> dict[str, str]:
    """Map each <img> src worth inlining to its absolute URL.

    Only relative sources and absolute sources on the origin's host qualify;
    data URIs and foreign hosts are left alone.
    """
    if not origin:
        return {}
    base = urlparse(origin)
    if base.scheme not in ("http", "https") or not base.netloc:
        return {}

    found: dict[str, str] = {}
    for src in _IMG_SRC_RE.findall(html):
        if not src or src.startswith("data:") or src in found:
            continue
        if src.startswith(("http://", "https://")):
            if urlparse(src).netloc != base.netloc:
                continue
            found[src] = src
        else:
            found[src] = urljoin(origin, src)
    return found


def replace_image_sources(html: str, replacements: Mapping[str, str]) -> str:
    if not replacements:
        return html

    def _swap(match: re.Match[str]) -> str:
        replacement = replacements.get(match.group(1))
        if not replacement:
            return match.group(0)
        return match.group(0).replace(match.group(1), replacement)

    return _IMG_SRC_RE.sub(_swap, html)


def _css_entry(item: str) -> str:
    return f'@import url("{item}");' if _URL_LIKE_RE.match(item) else item


def _margin(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        parts = []
        for side in ("top", "right", "bottom", "left"):
            raw = value.get(side)
            parts.append(raw.strip() if isinstance(raw, str) and raw.strip() else "0mm")
        return " ".join(parts)
    return None


def build_render_payload(html: str, css: str | list[str] | None, options: Mapping[str, Any] | None) -> dict[str, object]:
    """Translate a conversion request into the renderer's JSON body."""
    payload: dict[str, object] = {"source": html, "sandbox": False}

    if isinstance(css, list):
        if css:
            payload["css"] = "\n".join(_css_entry(str(item)) for item in css)
    elif css:
        payload["css"] = _css_entry(css)

    if not options:
        return payload

    for flag in ("use_print", "landscape"):
        if isinstance(options.get(flag), bool):
            payload[flag] = options[flag]

    fmt = options.get("format")
    if not isinstance(fmt, str):
        fmt = options.get("page_size")
    if isinstance(fmt, str) and fmt.strip():
        payload["format"] = fmt.strip().upper()

    margin = options.get("margin")
    if margin is None:
        margin = options.get("margins")
    margin = _margin(margin)
    if margin is not None:
        payload["margin"] = margin

    if isinstance(options.get("header"), Mapping):
        payload["header"] = dict(options["header"])

    if isinstance(options.get("footer"), Mapping):
        footer = dict(options["footer"])
        if not footer.get("height"):
            footer["height"] = "12mm"
        payload["footer"] = footer

    wait = options.get("wait")
    if isinstance(wait, (int, float)) and not isinstance(wait, bool) and 0 < wait < float("inf"):
        payload["delay"] = round(wait * 1000)

    return payload


def sanitize_filename(name: str | None) -> str:
    cleaned = _UNSAFE_FILENAME_RE.sub("_", name or "")[:MAX_FILENAME_LENGTH]
    return cleaned or DEFAULT_FILENAME


def _filename_segment(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "", re.sub(r"\s+", "_", value.strip()))


def _to_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str) and value.strip():
        match = re.match(r"[+-]?(\d+\.?\d*|\.\d+)", value.strip())
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def _first_text(record: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value:
            return value.strip()
    return ""


def build_proposal_filename(proposal: Mapping[str, Any], today: date | None = None) -> str:
    """Default download name derived from a proposal record.

    Prefers the stored ``metadata`` block and falls back to the raw
    ``proposal`` payload fields.
    """
    today = today or date.today()
    metadata = proposal.get("metadata")
    if isinstance(metadata, Mapping):
        customer = str(metadata.get("customerName") or "").strip()
        solution = str(metadata.get("solutionType") or "").strip()
        networks = _to_number(metadata.get("numberOfNetworks"))
    else:
        payload = proposal.get("proposal")
        payload = payload if isinstance(payload, Mapping) else {}
        customer = _first_text(payload, "Account", "CustomerName")
        solution = _first_text(payload, "Solution", "systemType")
        networks = _to_number(payload.get("NumberOfNetworks"))

    solution_part = _filename_segment(solution or "Solution")
    networks_part = _filename_segment(str(networks)) if networks is not None else "Networks"
    customer_part = _filename_segment(customer or "Customer")
    stamp = f"{today.day}{_MONTHS[today.month - 1]}{today.year}"
    return f"UCtel_Proposal_{solution_part}_{networks_part}_Networks_for_{customer_part}_{stamp}"
