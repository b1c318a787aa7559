"""
HTML extraction helpers for challenge and checkpoint pages
"""
import html
import re
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlparse

CHALLENGE_SCRIPT_RE = re.compile(
    r'<script[^>]+src=["\']https://(?:www\.recaptcha\.net/recaptcha/|www\.google\.com/recaptcha/'
    r'|www\.hcaptcha\.com/|hcaptcha\.com/|js\.hcaptcha\.com/)',
    re.IGNORECASE
)
CHALLENGE_FRAME_RE = re.compile(r'<iframe[^>]+title=["\']reCAPTCHA["\']', re.IGNORECASE)
FRAME_SRC_RE = re.compile(r'<iframe[^>]+src=["\']([^"\']*[?&;]k=[^"\']+)["\']', re.IGNORECASE)
SITEKEY_ATTR_RE = re.compile(r'data-sitekey=["\']([^"\']+)["\']', re.IGNORECASE)
SITEKEY_JS_RE = re.compile(r'["\']?sitekey["\']?\s*[:=]\s*["\']([^"\']+)["\']', re.IGNORECASE)
S_ATTR_RE = re.compile(r'data-s=["\']([^"\']+)["\']', re.IGNORECASE)
S_JS_RE = re.compile(r'["\']s["\']\s*:\s*["\']([^"\']+)["\']')
INPUT_RE = re.compile(r'<input[^>]*>', re.IGNORECASE)
NAME_RE = re.compile(r'name=["\']([^"\']+)["\']', re.IGNORECASE)
VALUE_RE = re.compile(r'value=["\']([^"\']*)["\']', re.IGNORECASE)

HCAPTCHA_RE = re.compile(r'hcaptcha\.com/', re.IGNORECASE)


def has_challenge(body: str) -> bool:
    """A recaptcha/hcaptcha script or the recaptcha frame is on the page"""
    if not body:
        return False
    return bool(CHALLENGE_SCRIPT_RE.search(body) or CHALLENGE_FRAME_RE.search(body))


def is_hcaptcha(body: str) -> bool:
    return bool(body and HCAPTCHA_RE.search(body))


def extract_sitekey(body: str) -> Optional[str]:
    if not body:
        return None
    frame = FRAME_SRC_RE.search(body)
    if frame:
        keys = parse_qs(urlparse(html.unescape(frame.group(1))).query).get('k')
        if keys and keys[0]:
            return keys[0]
    for pattern in (SITEKEY_ATTR_RE, SITEKEY_JS_RE):
        found = pattern.search(body)
        if found and found.group(1).strip():
            return html.unescape(found.group(1).strip())
    return None


def extract_input_value(body: str, name: str) -> Optional[str]:
    """Value of the first <input name=...> on the page"""
    if not body:
        return None
    for tag in INPUT_RE.findall(body):
        found_name = NAME_RE.search(tag)
        if found_name and found_name.group(1) == name:
            found_value = VALUE_RE.search(tag)
            if found_value and found_value.group(1):
                return html.unescape(found_value.group(1))
            return None
    return None


def extract_token(body: str) -> Optional[str]:
    return extract_input_value(body, 'authenticity_token')


def extract_checkpoint_captcha(body: str) -> Optional[Tuple[str, Optional[str]]]:
    """(sitekey, s) from a checkpoint page, or None without a sitekey"""
    sitekey = extract_sitekey(body)
    if not sitekey:
        return None
    s_value = S_ATTR_RE.search(body) or S_JS_RE.search(body)
    return sitekey, html.unescape(s_value.group(1)) if s_value else None


STOCK_PROBLEMS = 'stock_problems'


def is_stock_problem(url: str) -> bool:
    """Checkout redirected to .../stock_problems or ?step=stock_problems"""
    if not url:
        return False
    parsed = urlparse(url)
    if STOCK_PROBLEMS in [part for part in parsed.path.split('/') if part]:
        return True
    return STOCK_PROBLEMS in parse_qs(parsed.query).get('step', [])
