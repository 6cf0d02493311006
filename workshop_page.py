import enum
import re
from dataclasses import dataclass
from typing import List
from urllib.parse import parse_qs, urlparse

from selectolax.parser import HTMLParser

from errors import PageFormatError
from utils import dedupe_keep_order

WORKSHOP_ITEM_URL = "https://steamcommunity.com/sharedfiles/filedetails/?id={item_id}"
COLLECTION_MARKER = "collectionItemDetails"

_ITEM_ID_RE = re.compile(r"^[0-9]+$")
_ITEM_REF_RE = re.compile(r"filedetails/\?id=([0-9]+)")
_APP_ID_RE = re.compile(r"https://steamcommunity\.com/app/([0-9]+)")


class PageKind(enum.Enum):
    SINGLE = "single"
    COLLECTION = "collection"


@dataclass(frozen=True)
class WorkshopPage:
    kind: PageKind
    app_id: str
    title: str = ""

    @property
    def is_collection(self) -> bool:
        return self.kind is PageKind.COLLECTION


def workshop_item_url(item_id: str) -> str:
    return WORKSHOP_ITEM_URL.format(item_id=item_id)


def parse_item_id(value: str) -> str:
    """Accepts a bare numeric id or a workshop URL carrying ``?id=<n>``."""
    text = (value or "").strip()
    if _ITEM_ID_RE.match(text):
        return text
    if "://" in text or text.startswith("steamcommunity.com"):
        parsed = urlparse(text if "://" in text else f"https://{text}")
        for candidate in parse_qs(parsed.query).get("id") or []:
            if _ITEM_ID_RE.match(candidate):
                return candidate
    raise PageFormatError(f"Not a workshop item or collection id: {value!r}")


def classify_page(html_text: str) -> WorkshopPage:
    match = _APP_ID_RE.search(html_text or "")
    if not match:
        raise PageFormatError("App ID not found on the workshop page")
    kind = PageKind.COLLECTION if COLLECTION_MARKER in html_text else PageKind.SINGLE
    return WorkshopPage(kind=kind, app_id=match.group(1), title=_extract_title(html_text))


def extract_item_ids(html_text: str, exclude_id: str | None = None) -> List[str]:
    ids = dedupe_keep_order(_ITEM_REF_RE.findall(html_text or ""))
    return [item_id for item_id in ids if item_id != exclude_id]


def _extract_title(html_text: str) -> str:
    node = HTMLParser(html_text).css_first("div.workshopItemTitle")
    if node is None:
        return ""
    return re.sub(r"\s+", " ", node.text()).strip()
