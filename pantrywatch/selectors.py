"""Centralised selectors for the storefront crawl flows."""

# ==== REGION (delivery ZIP modal) ====
REGION_INPUT = (
    "#WC_BusinessDeliveryBrowseForm_FormInput_zipCodeFormDeliveryZipCode, "
    "input[name*='zipCode'], input[id*='zipCode']"
)
REGION_MODAL = ".modal-dialog"
# Site-provided function that opens the region modal without a click.
REGION_MODAL_OPENER = "COSTCO.zipCodeModal.showSetZipcode"
REGION_CHANGE_WORD = "change"
REGION_CHANGE_CONTEXT = ("zip", "location", "delivery")
REGION_SUBMIT_TEXT = "set delivery zip"
# Displayed once the region has been applied, e.g. "Delivery ZIP Code: 80031".
REGION_MARKER_PATTERN = r"Delivery ZIP Code:\s*(\d{5})"

# ==== LISTING (category pages) ====
# Tried in order; the first strategy yielding a product URL wins.
PRODUCT_LINK_STRATEGIES = (
    "[class*='product-tile'] a",
    "[data-automation-id='productTile'] a",
    ".product-tile a",
    ".product-item a",
    ".product-card a",
    "[class*='product'] a",
)
PRODUCT_URL_MARKERS = (".product.", "/p/", "product")
BLOCKED_URL_FRAGMENTS = ("#", "criteo.com", "redirect", "b.da.us", "rm?dest=")

PAGINATION_FORWARD = "li.forward a[href*='currentPage=']"
PAGINATION_SELECTED = "li.page.selected a"
PAGINATION_PAGE_LINK = "a[href*='currentPage={page}']"

# ==== DETAIL (product pages) ====
# Analytics payload the storefront embeds on every product page.
PRODUCT_DATA_PATH = "digitalData.product"
MEMBER_ONLY_FLAG = "member-only"

# ==== SCRIPTS ====
ANCHOR_DUMP_SCRIPT = """
() => Array.from(document.querySelectorAll('a')).map((a) => ({
  href: a.href || '',
  text: (a.textContent || '').trim(),
}))
"""

HREFS_FOR_SELECTOR_SCRIPT = """
(selector) => {
  try {
    return Array.from(document.querySelectorAll(selector)).map((a) => a.href || '');
  } catch (e) {
    return [];
  }
}
"""

FIND_REGION_CONTROL_SCRIPT = """
([word, contexts]) => {
  for (const element of document.querySelectorAll('*')) {
    const text = (element.textContent || '').toLowerCase();
    if (!text.includes(word) || !contexts.some((c) => text.includes(c))) {
      continue;
    }
    if (element.tagName === 'A' || element.tagName === 'BUTTON' || element.onclick) {
      return { found: true, tagName: element.tagName, text: (element.textContent || '').trim().slice(0, 120) };
    }
  }
  return { found: false };
}
"""

TRIGGER_REGION_CONTROL_SCRIPT = """
([opener, word, contexts]) => {
  const fn = opener.split('.').reduce((obj, key) => (obj ? obj[key] : undefined), window);
  if (typeof fn === 'function') {
    fn();
    return 'programmatic';
  }
  for (const element of document.querySelectorAll('*')) {
    const text = (element.textContent || '').toLowerCase();
    if (!text.includes(word) || !contexts.some((c) => text.includes(c))) {
      continue;
    }
    if (element.tagName === 'A' || element.tagName === 'BUTTON' || element.onclick) {
      element.click();
      return 'click';
    }
  }
  return null;
}
"""

CLEAR_INPUT_SCRIPT = """
(selector) => {
  const el = document.querySelector(selector);
  if (el) { el.value = ''; }
  return el ? el.value : null;
}
"""

INPUT_VALUE_SCRIPT = """
(selector) => {
  const el = document.querySelector(selector);
  return el ? el.value : null;
}
"""

CLICK_REGION_SUBMIT_SCRIPT = """
(label) => {
  const visible = (el) => {
    const style = window.getComputedStyle(el);
    return style.display !== 'none' && style.visibility !== 'hidden';
  };
  for (const button of document.querySelectorAll('button, input[type="submit"]')) {
    const text = (button.textContent || button.value || '').toLowerCase();
    const value = (button.value || '').toLowerCase();
    if (visible(button) && (text.includes(label) || value.includes(label))) {
      button.click();
      return (button.textContent || button.value || '').trim();
    }
  }
  return null;
}
"""

MODAL_OPEN_SCRIPT = """
(selector) => document.querySelector(selector) !== null
"""

NEXT_PAGE_CONTROL_SCRIPT = """
([forwardSelector, selectedSelector, pageLinkTemplate]) => {
  if (document.querySelector(forwardSelector)) {
    return {kind: 'forward', selector: forwardSelector};
  }
  const selected = document.querySelector(selectedSelector);
  if (selected) {
    const current = parseInt((selected.textContent || '').trim(), 10);
    if (!Number.isNaN(current)) {
      const selector = pageLinkTemplate.replace('{page}', String(current + 1));
      if (document.querySelector(selector)) {
        return {kind: 'numbered', selector};
      }
    }
  }
  return null;
}
"""

PRODUCT_DATA_SCRIPT = """
(path) => {
  const value = path.split('.').reduce((obj, key) => (obj ? obj[key] : undefined), window);
  if (!value) {
    return null;
  }
  const product = Array.isArray(value) ? value[0] : value;
  return product ? JSON.parse(JSON.stringify(product)) : null;
}
"""
