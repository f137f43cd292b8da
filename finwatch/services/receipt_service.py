"""
receipt_service.py - Receipt Field Extraction
Pulls store name, date, total and line items out of receipt text with
regular expressions. When an LLM provider is configured the model reads the
receipt first (the image through a vision-capable provider, otherwise the
text) and the regex pass only runs as a fallback. Nothing here raises on
bad input.
"""

import asyncio
import json
import logging
import re
from datetime import date, datetime

from pydantic import ValidationError

from finwatch.schemas import ReceiptExtraction, ReceiptItem

logger = logging.getLogger(__name__)

# ── Amounts ─────────────────────────────────────────────────────
# Matches: $1,234.56 | ₹ 1.234,56 | Rs.250 | 52.11 | 52,11
_CURRENCY = r"(?:[$₹€£¥]|Rs\.?|INR|USD|EUR)"
_AMOUNT_RE = re.compile(
    r"(?<![\d.,])(?P<cur>" + _CURRENCY + r")?\s?"
    r"(?P<num>\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)(?!\d)",
    re.IGNORECASE,
)
_ITEM_RE = re.compile(
    r"^(?P<name>.*?[A-Za-z].*?)\s+" + _CURRENCY + r"?\s?"
    r"(?P<price>\d{1,3}(?:[.,]\d{3})*[.,]\d{2}|\d+[.,]\d{2})\s*$",
    re.IGNORECASE,
)

# ── Keywords ────────────────────────────────────────────────────
_TOTAL_KW_RE = re.compile(r"\b(?:grand\s+total|total|amount|balance|sum)\b", re.IGNORECASE)
_NOT_TOTAL_RE = re.compile(r"\bsub\s*-?\s*total\b|\btotal\s+(?:items|savings|discount|tax)\b", re.IGNORECASE)
_ITEM_SKIP_RE = re.compile(
    r"\b(?:sub\s*-?\s*total|total|tax|balance|change|cash|credit|debit|card|amount|sum|vat|gst)\b",
    re.IGNORECASE,
)
_STORE_SKIP_RE = re.compile(r"\b(?:TOTAL|RECEIPT|INVOICE|TAX|THANK|WELCOME|CASHIER|TEL|PHONE)\b", re.IGNORECASE)
_STORE_RE = re.compile(r"^(?=(?:.*[A-Z]){3})[A-Z0-9][A-Z0-9&'.,\- ]*$")
# Title case: "Walmart Supercenter", "Corner Cafe & Bakery"
_STORE_TITLE_RE = re.compile(r"^[A-Z][A-Za-z'.\-]+(?:\s+(?:&|[A-Z0-9][A-Za-z0-9'.\-]*))*$")

# ── Dates ───────────────────────────────────────────────────────
_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_DATE_RE = re.compile(
    r"\b(?P<y1>\d{4})[-/.](?P<m1>\d{1,2})[-/.](?P<d1>\d{1,2})\b"
    r"|\b(?P<a>\d{1,2})[-/.](?P<b>\d{1,2})[-/.](?P<y2>\d{4}|\d{2})\b"
    r"|\b(?P<d3>\d{1,2})\s+(?P<mon3>Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?,?\s+(?P<y3>\d{4})\b"
    r"|\b(?P<mon4>Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+(?P<d4>\d{1,2}),?\s+(?P<y4>\d{4})\b",
    re.IGNORECASE,
)

TOTAL_OUTLIER_FACTOR = 1.5

RECEIPT_SYSTEM_PROMPT = (
    "You are an expert receipt analyzer. Extract the following information from the receipt image: "
    "store name, date, total amount, and items purchased with their individual prices. "
    "Format the response as a JSON object with these fields."
)
RECEIPT_USER_PROMPT = (
    "Analyze this receipt image and extract the details in JSON format with fields: "
    "storeName, date, totalAmount, items (array of {name, price})"
)
RECEIPT_TEXT_SYSTEM_PROMPT = (
    "You are an expert receipt analyzer. Extract the following information from the receipt text: "
    "store name, date, total amount, and items purchased with their individual prices. "
    "Format the response as a JSON object with these fields."
)
RECEIPT_TEXT_USER_PROMPT = (
    "Extract the details from this receipt text in JSON format with fields: "
    "storeName, date, totalAmount, items (array of {name, price}):"
)


# ── Helpers ─────────────────────────────────────────────────────

def parse_amount(token: str) -> float | None:
    """'1,234.56' / '1.234,56' / '52,11' → float; None if unparseable."""
    s = re.sub(_CURRENCY, "", str(token), flags=re.IGNORECASE).replace(" ", "").strip()
    if not s:
        return None
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        head, _, tail = s.rpartition(",")
        s = head.replace(",", "") + ("." + tail if len(tail) in (1, 2) else tail)
    elif s.count(".") > 1:
        head, _, tail = s.rpartition(".")
        s = head.replace(".", "") + ("." + tail if len(tail) in (1, 2) else tail)
    try:
        return float(s)
    except ValueError:
        return None


def _amounts(line: str, currency_only: bool = False) -> list[float]:
    """Money-like tokens in a line; bare integers are ignored unless prefixed."""
    found = []
    for m in _AMOUNT_RE.finditer(_DATE_RE.sub(" ", line)):
        has_currency = bool(m.group("cur"))
        has_decimals = bool(re.search(r"[.,]\d{1,2}$", m.group("num")))
        if currency_only and not has_currency:
            continue
        if not (has_currency or has_decimals):
            continue
        value = parse_amount(m.group("num"))
        if value is not None:
            found.append(value)
    return found


def _expand_year(year: int, digits: int) -> int:
    if digits == 2:
        return 2000 + year if year < 50 else 1900 + year
    return year


def _date_from_match(m: re.Match) -> date | None:
    try:
        if m.group("y1"):
            return date(int(m.group("y1")), int(m.group("m1")), int(m.group("d1")))
        if m.group("a"):
            a, b = int(m.group("a")), int(m.group("b"))
            year = _expand_year(int(m.group("y2")), len(m.group("y2")))
            if b > 12 >= a:
                # Second field can only be a day: month-first
                return date(year, a, b)
            return date(year, b, a)
        if m.group("mon3"):
            return date(int(m.group("y3")), _MONTHS[m.group("mon3")[:3].lower()], int(m.group("d3")))
        if m.group("mon4"):
            return date(int(m.group("y4")), _MONTHS[m.group("mon4")[:3].lower()], int(m.group("d4")))
    except ValueError:
        return None
    return None


def parse_date(text: str) -> str | None:
    """ISO date of the first parseable date-like token, or None."""
    for m in _DATE_RE.finditer(text or ""):
        parsed = _date_from_match(m)
        if parsed is not None:
            return parsed.isoformat()
    return None


def _amount_after_keyword(line: str, currency_only: bool) -> float | None:
    m = _TOTAL_KW_RE.search(line)
    if not m or _NOT_TOTAL_RE.search(line):
        return None
    amounts = _amounts(line[m.end():], currency_only=currency_only)
    return amounts[-1] if amounts else None


# ── Extractors ──────────────────────────────────────────────────

def extract_store_name(lines: list[str]) -> str:
    for line in lines:
        candidate = re.sub(r"\s{2,}", " ", line.strip())
        if not candidate or _STORE_SKIP_RE.search(candidate):
            continue
        if _DATE_RE.search(candidate) or _amounts(candidate):
            continue
        if _STORE_RE.match(candidate) or _STORE_TITLE_RE.match(candidate):
            return candidate.strip(" .,-")
    return "Unknown Store"


def extract_total(lines: list[str]) -> float:
    # Pass 1: keyword followed by a currency-prefixed amount, top to bottom
    for line in lines:
        value = _amount_after_keyword(line, currency_only=True)
        if value is not None:
            return value

    # Pass 2: keyword followed by any amount, bottom to top
    for line in reversed(lines):
        value = _amount_after_keyword(line, currency_only=False)
        if value is not None:
            return value

    # Pass 3: the largest amount, if it stands well clear of the rest
    amounts = [a for line in lines for a in _amounts(line)]
    if amounts:
        largest = max(amounts)
        mean = sum(amounts) / len(amounts)
        if largest >= TOTAL_OUTLIER_FACTOR * mean and largest > 0:
            return largest
    return 0.0


def extract_items(lines: list[str]) -> list[ReceiptItem]:
    items = []
    for line in lines:
        stripped = line.strip()
        m = _ITEM_RE.match(stripped)
        if not m:
            continue
        name = re.sub(r"\s{2,}", " ", m.group("name")).strip(" .:-\t")
        if not name or _ITEM_SKIP_RE.search(name) or _DATE_RE.search(name):
            continue
        price = parse_amount(m.group("price"))
        if price is None:
            continue
        items.append(ReceiptItem(name=name, price=price))
    return items


class ReceiptExtractor:
    def __init__(self, llm_router=None, timeout: float = 30.0):
        self.llm_router = llm_router
        self.timeout = timeout

    def extract(self, raw_text: str | None) -> ReceiptExtraction:
        """Best-effort regex extraction; defaults for anything not found."""
        try:
            lines = [l for l in (raw_text or "").splitlines() if l.strip()]
            return ReceiptExtraction(
                store_name=extract_store_name(lines),
                date=parse_date(raw_text or "") or date.today().isoformat(),
                total_amount=max(0.0, extract_total(lines)),
                items=extract_items(lines),
            )
        except Exception as e:
            logger.error(f"Receipt regex extraction failed: {e}")
            return ReceiptExtraction()

    async def scan(self, text: str | None = None, image_base64: str | None = None) -> tuple[ReceiptExtraction, str]:
        """Returns (extraction, source) where source is 'ai', 'regex' or 'default'.

        Order: vision model (image given), text model (text given), regex, defaults.
        """
        router = self.llm_router
        if image_base64 and router is not None and router.has_vision():
            extraction = await self._ask_model(self._vision_messages(image_base64), require_vision=True)
            if extraction is not None:
                return extraction, "ai"
            logger.warning("Vision extraction unusable; falling back to text parsing")

        if not text:
            return ReceiptExtraction(), "default"

        if router is not None and router.available:
            extraction = await self._ask_model(self._text_messages(text))
            if extraction is not None:
                return extraction, "ai"
            logger.warning("Model text extraction unusable; falling back to regex")
        return self.extract(text), "regex"

    @staticmethod
    def _vision_messages(image_base64: str) -> list[dict]:
        return [
            {"role": "system", "content": RECEIPT_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": RECEIPT_USER_PROMPT},
                    {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{image_base64}"}},
                ],
            },
        ]

    @staticmethod
    def _text_messages(text: str) -> list[dict]:
        return [
            {"role": "system", "content": RECEIPT_TEXT_SYSTEM_PROMPT},
            {"role": "user", "content": f"{RECEIPT_TEXT_USER_PROMPT}\n\n{text}"},
        ]

    async def _ask_model(self, messages: list[dict], require_vision: bool = False) -> ReceiptExtraction | None:
        try:
            resp = await asyncio.wait_for(
                self.llm_router.route(messages, json_mode=True, require_vision=require_vision),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Receipt extraction by model timed out")
            return None
        except Exception as e:
            logger.warning(f"Receipt extraction by model failed: {e}")
            return None
        return self.parse_ai_response(resp)

    @staticmethod
    def parse_ai_response(resp: dict | None) -> ReceiptExtraction | None:
        """Accept the model's answer only if it is a JSON object of the right shape."""
        if not resp or resp.get("status") != "success":
            return None
        text = resp.get("text") or ""
        start = text.find("{")
        end = text.rfind("}") + 1
        if start == -1 or end == 0:
            return None
        try:
            data = json.loads(text[start:end])
        except ValueError:
            return None
        if not isinstance(data, dict) or "totalAmount" not in data:
            return None

        if isinstance(data.get("totalAmount"), str):
            data["totalAmount"] = parse_amount(data["totalAmount"])
        items = data.get("items") or []
        if not isinstance(items, list):
            return None
        for item in items:
            if isinstance(item, dict) and isinstance(item.get("price"), str):
                item["price"] = parse_amount(item["price"])
        data["items"] = items

        raw_date = data.get("date")
        data["date"] = parse_date(str(raw_date)) if raw_date else None
        if not data["date"]:
            data["date"] = _coerce_iso(raw_date) or date.today().isoformat()
        if not data.get("storeName"):
            data["storeName"] = "Unknown Store"

        try:
            return ReceiptExtraction.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Vision receipt answer has the wrong shape: {e}")
            return None


def _coerce_iso(value) -> str | None:
    try:
        return datetime.fromisoformat(str(value)).date().isoformat()
    except (TypeError, ValueError):
        return None
