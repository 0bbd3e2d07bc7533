"""Utility helpers for normalising scraped text values and product URLs."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

SOURCE_SCRIPT_RE = re.compile(r"[一-龥]")
TARGET_SCRIPT_RE = re.compile(r"[؀-ۿ]")
CYRILLIC_RE = re.compile(r"[Ѐ-ӿԀ-ԯ]")

MOBILE_GOODS_URL = "https://mobile.pinduoduo.com/goods.html?goods_id={goods_id}"

_COUPON_SUFFIX = "券后"
_TRAILING_PRICE_RE = re.compile(r"-?\s*[\d.]+$")
_WHITESPACE_RE = re.compile(r"\s+")
_REVIEW_MARKERS = ("comment", "reviews", "subject_review")
_LISTING_MARKERS = ("catgoods", "search_result", "classification")

EDIBLE_KEYWORDS = (
    "食品", "零食", "蔬果", "罐头", "饮料", "糖果", "饼干", "调料", "茶叶", "酒水",
    "鲜肉", "鸡蛋", "牛奶", "食用油", "大米", "面粉", "果冻", "巧克力", "咖啡",
    "保健品", "维生素", "钙片", "酵素", "益生菌",
    "snack", "candy", "biscuit", "chocolate", "coffee", "seasoning", "noodle",
)


def collapse_whitespace(value: str | None) -> str:
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip()


def has_source_script(text: str | None) -> bool:
    return bool(text) and SOURCE_SCRIPT_RE.search(text) is not None


def is_target_script(text: str | None) -> bool:
    """True when most letters of ``text`` are already in the target script."""

    if not text:
        return False
    letters = [char for char in text if char.isalpha()]
    if not letters:
        return False
    target = sum(1 for char in letters if TARGET_SCRIPT_RE.match(char))
    return target * 2 > len(letters)


def strip_cyrillic(text: str) -> str:
    return CYRILLIC_RE.sub("", text)


def clean_option_label(raw: str | None) -> str:
    """Strip the coupon suffix and trailing embedded price from a variant label."""

    label = (raw or "").strip()
    if _COUPON_SUFFIX in label:
        label = label.split(_COUPON_SUFFIX)[0].strip()
    label = _TRAILING_PRICE_RE.sub("", label).strip()
    return collapse_whitespace(label)


def is_valid_option_label(label: str) -> bool:
    """Single source-script characters are real colours; other 1-char labels are layout noise."""

    if not label:
        return False
    if len(label) <= 1 and not has_source_script(label):
        return False
    return True


def is_edible(text: str | None) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in EDIBLE_KEYWORDS)


# URL helpers ------------------------------------------------------------------


def get_goods_id(url: str | None) -> str | None:
    """Return the canonical ``goods_id`` query parameter of a product URL."""

    if not url:
        return None
    try:
        values = parse_qs(urlparse(str(url)).query).get("goods_id")
    except ValueError:
        return None
    if not values:
        return None
    goods_id = values[0].strip()
    return goods_id or None


def normalize_product_url(url: str | None) -> str | None:
    goods_id = get_goods_id(url)
    if goods_id is None:
        return url or None
    parsed = urlparse(str(url))
    if parsed.hostname == "m.pinduoduo.com" and parsed.path.startswith("/home"):
        return MOBILE_GOODS_URL.format(goods_id=goods_id)
    return str(url)


def is_product_url(url: str | None) -> bool:
    if get_goods_id(url) is None:
        return False
    parsed = urlparse(str(url))
    path = parsed.path or ""
    if parsed.hostname == "m.pinduoduo.com" and path.startswith("/home"):
        return True
    return "goods.html" in path or "goods_detail" in path or "/goods" in path


def is_review_url(url: str | None) -> bool:
    if not url:
        return False
    return any(marker in url for marker in _REVIEW_MARKERS)


def is_listing_url(url: str | None) -> bool:
    if not url or get_goods_id(url) is not None:
        return False
    return any(marker in url for marker in _LISTING_MARKERS)


def looks_like_product_page(url: str | None) -> bool:
    """Guard used before scraping description images, so a listing is never scraped by mistake."""

    if not url:
        return False
    if "goods" not in url and "product" not in url:
        return False
    if "classification" in url:
        return False
    if "search_result" in url and "goods_id" not in url:
        return False
    return True


__all__ = [
    "clean_option_label",
    "collapse_whitespace",
    "get_goods_id",
    "has_source_script",
    "is_edible",
    "is_listing_url",
    "is_product_url",
    "is_review_url",
    "is_target_script",
    "is_valid_option_label",
    "looks_like_product_page",
    "normalize_product_url",
    "strip_cyrillic",
]
