"""Centralised selectors and in-page scripts for the storefront's mobile views."""

# ==== LISTING ====
LISTING_CONTAINERS = ("#main", ".page-container", ".goods-list-container")
PRODUCT_MARKERS = (".goods-name", ".pdd-goods-name")

# ==== PRODUCT (name / gallery / price) ====
NAME = ".Vrv3bF_E .tLYIg_Ju"
NAME_ALT = ".tLYIg_Ju"
GALLERY_UNIQID = ".PPuOGFfM"
GALLERY = ".QFNLpbqP img"
GALLERY_ALT = ".QFNLpbqP"
SLIDER_IMAGES = (
    ".goods-slider img, .swiper-slide img, .swiper-container img, "
    ".banner-slider img, .slick-slide img, #main > div > div:first-child img"
)
IMAGE_DENYLIST = ("avatar", "icon", "coupon", "video-snapshot")
DESCRIPTION_TEXT = ".jvsKAdEs"
LOGIN_NAME_MARKERS = ("登录", "Login")

# ==== REVIEWS ====
REVIEW_ENTRY_BUTTONS = (".VoYGP4Rl", ".Oi_xBKes", ".e9rzVEAe", ".F2MXl7Xc", ".IpR_6z4r")

# ==== DESCRIPTION IMAGES ====
DESCRIPTION_CONTAINERS = (".mP10ZXCw", ".UhNRiWLO")


# ==== IN-PAGE SCRIPTS ====
# Scripts return raw DOM facts; cleaning and ordering happen in Python.

TEXT_SCRIPT = """
(selector) => {
  const el = document.querySelector(selector);
  return el ? (el.innerText || '').trim() : '';
}
"""

EXISTS_SCRIPT = """
(selectors) => selectors.some((selector) => !!document.querySelector(selector))
"""

CONTAINER_RECT_SCRIPT = """
(selectors) => {
  const el = selectors.map((selector) => document.querySelector(selector)).find(Boolean) || document.body;
  const rect = el.getBoundingClientRect();
  return { x: rect.left, y: rect.top, width: rect.width, height: rect.height };
}
"""

_IMG_SOURCE = """
  const source = (img) => {
    if (!img) return { src: '', dataSrc: '' };
    return { src: (img.src || '').trim(), dataSrc: (img.getAttribute('data-src') || '').trim() };
  };
"""

UNIQID_IMAGES_SCRIPT = (
    """
(selector) => {"""
    + _IMG_SOURCE
    + """
  return Array.from(document.querySelectorAll(selector))
    .filter((el) => el.hasAttribute('data-uniqid'))
    .map((el) => {
      const img = el.tagName === 'IMG' ? el : el.querySelector('img');
      return Object.assign({ id: el.getAttribute('data-uniqid') }, source(img));
    });
}
"""
)

IMAGE_SOURCES_SCRIPT = (
    """
(selector) => {"""
    + _IMG_SOURCE
    + """
  return Array.from(document.querySelectorAll(selector)).map((el) => source(el));
}
"""
)

VIEWPORT_IMAGES_SCRIPT = """
() => Array.from(document.querySelectorAll('img')).map((img) => {
  const rect = img.getBoundingClientRect();
  return {
    src: (img.src || '').trim(),
    dataSrc: (img.getAttribute('data-src') || '').trim(),
    top: rect.top,
    naturalWidth: img.naturalWidth || 0,
    naturalHeight: img.naturalHeight || 0,
    viewportHeight: window.innerHeight || 0,
  };
})
"""

LEAF_PRICE_TEXTS_SCRIPT = """
() => {
  const texts = [];
  for (const el of document.querySelectorAll('span, div, p')) {
    if (el.children.length !== 0 || !el.innerText) continue;
    const text = el.innerText.trim();
    if (text.startsWith('¥') || text.startsWith('￥')) texts.push(text);
    if (texts.length >= 50) break;
  }
  return texts;
}
"""

OPTION_ITEMS_SCRIPT = """
() => {
  const list = document.querySelector('ul.IENSVgAB');
  const items = list ? list.querySelectorAll('li') : document.querySelectorAll('.TpUpcNRp');
  const text = (el) => (el ? (el.innerText || '').trim() : '');
  return Array.from(items).map((item) => {
    let img = item.querySelector('.PQoZYCec img');
    if (!img) {
      const holder = item.querySelector('.PQoZYCec');
      if (holder && holder.tagName === 'IMG') img = holder;
    }
    return {
      thumbnail: img ? img.src : '',
      label: text(item.querySelector('.U63Kdv8C')),
      price: text(item.querySelector('.nvN5jV0G span') || item.querySelector('.nvN5jV0G')),
      fallbackPrice: text(item.querySelector('.RITrraU3') || item.querySelector('.O8fR8K8O')),
    };
  });
}
"""

REVIEW_ITEMS_SCRIPT = """
() => Array.from(document.querySelectorAll('.LFMbudEX')).map((item) => {
  const text = (selector) => {
    const el = item.querySelector(selector);
    return el ? (el.innerText || '').trim() : '';
  };
  return {
    name: text('.BQX0_Yxu'),
    text: text('.QznBag3Z'),
    variant: text('.qnRmJ_Uy'),
    photos: Array.from(item.querySelectorAll('.db85mmgV img')).map((img) => img.src).filter(Boolean),
  };
})
"""

DESCRIPTION_TARGET_SCRIPT = """
() => {
  let target = document.querySelector('.Blmqu2TV');
  if (!target) {
    const parent = document.querySelector('.UhNRiWLO');
    if (parent) target = parent.querySelector('.Blmqu2TV');
  }
  if (!target) return 0;
  target.scrollIntoView({ behavior: 'smooth', block: 'start' });
  return target.scrollHeight || 0;
}
"""

DESCRIPTION_IMAGES_SCRIPT = (
    """
() => {"""
    + _IMG_SOURCE
    + """
  let target = document.querySelector('.Blmqu2TV');
  if (!target) {
    const parent = document.querySelector('.UhNRiWLO');
    if (parent) target = parent.querySelector('.Blmqu2TV');
  }
  if (!target) {
    target = document.querySelector('.mP10ZXCw') || document.querySelector('.UhNRiWLO');
  }
  if (!target) return { tagged: [], any: [] };
  return {
    tagged: Array.from(target.querySelectorAll('div[data-uniqid]'))
      .map((div) => div.querySelector('img'))
      .filter(Boolean)
      .map((img) => source(img)),
    any: Array.from(target.querySelectorAll('img')).map((img) => source(img)),
  };
}
"""
)
