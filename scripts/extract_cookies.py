"""Save LinkedIn session cookies for the browser profile scraper.

Usage:
    .venv/bin/python scripts/extract_cookies.py [--output PATH]

Opens a Chromium window. Log in to LinkedIn manually, then press Enter
in the terminal. The cookies are written where ``browser.cookies_path``
points (config/linkedin_cookies.json by default) and are only needed
when settings select ``scraper: browser``.
"""

import argparse
import json
import sys
from pathlib import Path

from patchright.sync_api import sync_playwright


DEFAULT_OUTPUT = "config/linkedin_cookies.json"
AUTH_COOKIE = "li_at"


def main() -> None:
    parser = argparse.ArgumentParser(description="Save LinkedIn cookies for the browser scraper")
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help=f"Cookie file (default: {DEFAULT_OUTPUT})")
    args = parser.parse_args()
    output = Path(args.output)

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=False)
        context = browser.new_context()
        page = context.new_page()
        page.goto("https://www.linkedin.com/login")

        input("\n>>> Log in to LinkedIn, then press Enter here to save cookies...")

        cookies = context.cookies()
        browser.close()

    if not any(c.get("name") == AUTH_COOKIE for c in cookies):
        print(f"No {AUTH_COOKIE} cookie found, did the login complete?", file=sys.stderr)
        sys.exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(cookies, indent=2))
    print(f"Saved {len(cookies)} cookies to {output}")


if __name__ == "__main__":
    main()
