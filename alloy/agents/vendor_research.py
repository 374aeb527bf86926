"""
vendor_research.py — Vendor Website Research

Optional pre-step for vendor sourcing (USE_FIRECRAWL=true). For one
component it:
  1. asks Claude for 3-5 real vendor websites,
  2. scrapes each site concurrently (30 s per site),
  3. pulls contact emails, phone numbers and a contact-page link out of
     the page,
  4. renders the results as a prompt block the sourcing agent can ground on.

Scraping goes through the Firecrawl REST API when FIRECRAWL_API_KEY is set,
otherwise a plain requests GET + BeautifulSoup. Nothing here raises into the
sourcing run: a failed site becomes None, failed discovery becomes no context.
"""

import re
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from alloy.core.errors import ProcurementError
from alloy.core.llm import call_claude, parse_json_response
from alloy.core.secrets import get_key

log = logging.getLogger("alloy.vendor_research")

FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v1/scrape"
SCRAPE_TIMEOUT = 30
CONTEXT_CHARS = 2000
MAX_WORKERS = 5

USER_AGENT = ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
              "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36")

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_RE = re.compile(r"(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}")
# Image names like logo@2x.png look like addresses
_ASSET_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")

_SYSTEM = """You are a vendor research assistant. Identify real, established
companies that could supply an engineering component. For each give the
company name, a real accessible website URL, a confidence level (high, medium
or low) for how well they match, and a brief reason. Return valid JSON only."""


# ─── Discovery ───────────────────────────────────────────────────────────────

def find_vendor_urls(component_name: str, specifications: str) -> list:
    """Claude → [{name, websiteUrl, confidence, reason}]. [] if unparseable."""
    prompt = (f"Find 3-5 real vendors that could supply this component:\n\n"
              f"Component: {component_name}\nSpecifications: {specifications}\n\n"
              'Return a JSON array: [{"name": "Company Name", "websiteUrl": '
              '"https://example.com", "confidence": "high", "reason": "..."}]')
    text = call_claude(prompt, system=_SYSTEM, max_tokens=4096)
    try:
        candidates = parse_json_response(text)
    except ProcurementError as e:
        log.warning("Vendor URL discovery returned bad JSON for %s: %s", component_name, e)
        return []
    if not isinstance(candidates, list):
        return []
    return [c for c in candidates
            if isinstance(c, dict) and c.get("name") and c.get("websiteUrl")]


# ─── Scraping ────────────────────────────────────────────────────────────────

def extract_contacts(text: str, soup: BeautifulSoup = None, base_url: str = "") -> dict:
    emails = []
    for m in EMAIL_RE.findall(text or ""):
        m = m.rstrip(".")
        if m.lower().endswith(_ASSET_SUFFIXES) or m.lower() in emails:
            continue
        emails.append(m.lower())
    phones = []
    for m in PHONE_RE.findall(text or ""):
        if m.strip() not in phones:
            phones.append(m.strip())

    contact_url = None
    if soup is not None:
        for a in soup.find_all("a", href=True):
            href = a["href"]
            if href.lower().startswith("mailto:"):
                addr = href[7:].split("?")[0].strip().lower()
                if addr and addr not in emails:
                    emails.append(addr)
            elif contact_url is None and ("contact" in href.lower()
                                          or "contact" in a.get_text(" ").lower()):
                contact_url = urljoin(base_url, href)
    return {"emails": emails, "phoneNumbers": phones, "contactPageUrl": contact_url}


def _scrape_firecrawl(url: str, api_key: str) -> dict:
    resp = requests.post(
        FIRECRAWL_SCRAPE_URL,
        headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        json={"url": url, "formats": ["markdown", "html"]},
        timeout=SCRAPE_TIMEOUT,
    )
    resp.raise_for_status()
    data = resp.json().get("data") or {}
    return {"markdown": data.get("markdown") or "", "html": data.get("html") or ""}


def _scrape_direct(url: str) -> dict:
    resp = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=SCRAPE_TIMEOUT)
    resp.raise_for_status()
    html = resp.text
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = re.sub(r"\n\s*\n+", "\n\n", soup.get_text("\n")).strip()
    return {"markdown": text, "html": html}


def scrape_vendor_website(url: str) -> dict:
    """Fetch one vendor page. Raises requests exceptions on failure."""
    api_key = get_key("firecrawl")
    page = _scrape_firecrawl(url, api_key) if api_key else _scrape_direct(url)
    soup = BeautifulSoup(page["html"], "html.parser") if page["html"] else None
    page["extracted"] = extract_contacts(page["markdown"], soup, url)
    page["url"] = url
    log.debug("Scraped %s: %d chars, %d emails", url, len(page["markdown"]),
              len(page["extracted"]["emails"]))
    return page


def scrape_all(candidates: list, timeout: int = SCRAPE_TIMEOUT) -> list:
    """Scrape every candidate concurrently. Result is index-aligned; failures are None."""
    if not candidates:
        return []
    results = [None] * len(candidates)
    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(candidates))) as pool:
        futures = [pool.submit(scrape_vendor_website, c["websiteUrl"]) for c in candidates]
        for i, fut in enumerate(futures):
            try:
                page = fut.result(timeout=timeout)
            except FutureTimeout:
                log.warning("Scrape timed out: %s", candidates[i]["websiteUrl"])
                continue
            except (requests.RequestException, ValueError) as e:
                log.warning("Scrape failed: %s (%s)", candidates[i]["websiteUrl"], e)
                continue
            page["vendorName"] = candidates[i]["name"]
            results[i] = page
    return results


def research_vendors(component: dict) -> list:
    """Discovery + scraping for one component. Never raises."""
    name = component.get("name", "")
    try:
        candidates = find_vendor_urls(name, component.get("specifications", ""))
        log.info("Found %d vendor URLs for %s", len(candidates), name, extra={"component": name})
        scraped = scrape_all(candidates)
    except ProcurementError as e:
        log.warning("Vendor research failed for %s, continuing without it: %s", name, e)
        return []
    log.info("Scraped %d/%d vendor sites for %s",
             sum(1 for s in scraped if s), len(scraped), name)
    return scraped


# ─── Prompt context & annotation ─────────────────────────────────────────────

def build_scraped_context(scraped: list) -> str:
    blocks = []
    for n, page in enumerate([s for s in scraped or [] if s], 1):
        ex = page.get("extracted") or {}
        blocks.append(
            f"Vendor {n}: {page.get('vendorName', '')}\n"
            f"URL: {page.get('url', '')}\n"
            f"Website Content (first {CONTEXT_CHARS} chars):\n"
            f"{page.get('markdown', '')[:CONTEXT_CHARS]}...\n"
            f"Extracted Emails: {', '.join(ex.get('emails') or []) or 'Not found'}\n"
            f"Extracted Phone Numbers: {', '.join(ex.get('phoneNumbers') or []) or 'Not found'}"
        )
    return "\n\n".join(blocks)


def annotate_vendors(vendors: list, scraped: list) -> list:
    """Carry website URLs across and flag emails that came from a real page."""
    scraped = scraped or []
    for i, vendor in enumerate(vendors):
        page = scraped[i] if i < len(scraped) else None
        if not page:
            vendor.setdefault("emailExtracted", False)
            continue
        if not vendor.get("websiteUrl"):
            vendor["websiteUrl"] = page.get("url")
        emails = (page.get("extracted") or {}).get("emails") or []
        vendor["emailExtracted"] = bool(vendor.get("email")) and \
            vendor["email"].lower() in emails
    return vendors
