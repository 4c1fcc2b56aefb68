"""LinkedIn profile-page selector constants with fallbacks.

Ordered by stability: data-* > aria-* > class names.
Each constant is a tuple so callers iterate until a match is found.
"""

# --- Top card ---
NAME_SELECTORS: tuple[str, ...] = (
    "h1.text-heading-xlarge",
    "main section h1",
    "h1",
)

HEADLINE_SELECTORS: tuple[str, ...] = (
    "div.text-body-medium.break-words",
    "[data-generated-suggestion-target] .text-body-medium",
)

LOCATION_SELECTORS: tuple[str, ...] = (
    "span.text-body-small.inline.t-black--light.break-words",
    ".pv-text-details__left-panel span.text-body-small",
)

ABOUT_SELECTORS: tuple[str, ...] = (
    "section:has(#about) div.inline-show-more-text span[aria-hidden='true']",
    "section:has(#about) .pv-shared-text-with-see-more span[aria-hidden='true']",
)

# --- Lazily rendered sections (used to decide when scrolling is done) ---
SECTION_SELECTORS: tuple[str, ...] = (
    "main section[data-view-name]",
    "main section.artdeco-card",
)

# --- Experience entries ---
EXPERIENCE_ITEM_SELECTORS: tuple[str, ...] = (
    "section:has(#experience) li.artdeco-list__item",
    "section:has(#experience) ul > li",
)

# Within one experience entry: title, company line, date range (in order).
EXPERIENCE_TEXT_SELECTOR: str = "span[aria-hidden='true']"

# --- Skills ---
SKILL_SELECTORS: tuple[str, ...] = (
    "section:has(#skills) li.artdeco-list__item div.t-bold span[aria-hidden='true']",
    "section:has(#skills) a[data-field='skill_card_skill_topic'] span[aria-hidden='true']",
)

# --- Signs the session is no longer authenticated or was throttled ---
BLOCKED_URL_MARKERS: tuple[str, ...] = (
    "/checkpoint/",
    "/authwall",
    "/login",
)
