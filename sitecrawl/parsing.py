from typing import Dict, List, Optional, Tuple
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup


MAX_TEXT_CHARS = 4000


def _netloc(parsed) -> str:
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    try:
        port = parsed.port
    except ValueError:
        port = None
    if port and not ((scheme == "http" and port == 80) or (scheme == "https" and port == 443)):
        host = f"{host}:{port}"
    return host


class UrlTools:
    @staticmethod
    def normalize(url: str) -> str:
        """Canonical form used for dedup.

        Lowercase scheme and host, default port dropped, fragment dropped,
        trailing slash removed from any path except the root ("/").
        """
        url, _ = urldefrag(url.strip())
        parsed = urlparse(url)
        host = _netloc(parsed)
        if parsed.username:
            userinfo = parsed.username + (f":{parsed.password}" if parsed.password else "")
            host = f"{userinfo}@{host}"
        path = parsed.path or "/"
        if len(path) > 1:
            path = path.rstrip("/") or "/"
        return urlunparse((parsed.scheme.lower(), host, path, parsed.params, parsed.query, ""))

    @staticmethod
    def origin(url: str) -> str:
        parsed = urlparse(url)
        return f"{parsed.scheme.lower()}://{_netloc(parsed)}"

    @staticmethod
    def host(url: str) -> str:
        return urlparse(url).netloc.lower()

    @staticmethod
    def extension(url: str) -> Optional[str]:
        last_segment = urlparse(url).path.rsplit("/", 1)[-1]
        if "." not in last_segment:
            return None
        ext = last_segment.rsplit(".", 1)[-1].lower()
        return ext or None

    @staticmethod
    def normalize_link(base_url: str, href: str) -> Optional[str]:
        if not href:
            return None
        href = href.strip()
        if href.startswith(("mailto:", "javascript:", "tel:", "data:", "#")):
            return None
        try:
            absolute, _ = urldefrag(urljoin(base_url, href))
            parsed = urlparse(absolute)
        except ValueError:
            # e.g. an unterminated IPv6 literal
            return None
        if parsed.scheme not in ("http", "https"):
            return None
        return absolute


class Extractor:
    @staticmethod
    def extract(url: str, html: str) -> Tuple[Dict, List[str], List[str]]:
        soup = BeautifulSoup(html, "html.parser")
        title_el = soup.find("title")
        title = title_el.get_text(strip=True) if title_el else ""
        desc_el = soup.find("meta", attrs={"name": "description"})
        if not desc_el or not desc_el.get("content"):
            desc_el = soup.find("meta", attrs={"property": "og:description"})
        description = (desc_el.get("content") or "").strip() if desc_el else ""

        links: List[str] = []
        for a in soup.find_all("a", href=True):
            normalized = UrlTools.normalize_link(url, a["href"])
            if normalized:
                links.append(normalized)
        images: List[str] = []
        for img in soup.find_all("img", src=True):
            src = (img["src"] or "").strip()
            if not src or src.startswith("data:"):
                continue
            try:
                images.append(urljoin(url, src))
            except ValueError:
                continue

        for el in soup(["script", "style", "noscript"]):
            el.decompose()
        text = soup.get_text(" ", strip=True)
        if len(text) > MAX_TEXT_CHARS:
            text = text[:MAX_TEXT_CHARS]
        record = {
            "url": url,
            "title": title,
            "description": description,
            "text": text,
            "num_links": len(links),
        }
        return record, links, images
