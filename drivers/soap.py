"""Minimal SOAP 1.1 helpers.

Envelopes are assembled as text because the invoice document travels
inside a CDATA section, which ElementTree cannot emit. Responses are read
with tolerant tag extraction: providers differ in namespace prefixes and
nesting, but the leaf tag names (``code``, ``explanation``, ...) are stable.
"""

import html
import re
from typing import Dict, Iterable, List, Optional, Tuple, Union
from xml.sax.saxutils import escape

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"

SOAP_HEADERS = {
    "Content-Type": "text/xml; charset=utf-8",
    "SOAPAction": '""',
}

SUCCESS_CODES = frozenset({"000", "200", "SUCCESS", "0"})

_CDATA = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)


def cdata(text: str) -> str:
    """Wrap text in a CDATA section, splitting any embedded terminator."""
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def element(name: str, value: Union[str, int, bool, None] = None, raw: bool = False) -> str:
    """Render ``<name>value</name>``; values are escaped unless ``raw``."""
    if value is None:
        return f"<{name}/>"
    if isinstance(value, bool):
        value = "true" if value else "false"
    text = str(value) if raw else escape(str(value))
    return f"<{name}>{text}</{name}>"


def elements(pairs: Iterable[Tuple[str, Union[str, int, bool, None]]]) -> str:
    return "".join(element(name, value) for name, value in pairs)


def build_envelope(operation: str, body: str, namespace: str, prefix: str = "ns1") -> str:
    """Wrap an operation body in a SOAP envelope."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<soap:Envelope xmlns:soap="{SOAP_ENV_NS}" xmlns:{prefix}="{namespace}">'
        "<soap:Body>"
        f"<{prefix}:{operation}>{body}</{prefix}:{operation}>"
        "</soap:Body>"
        "</soap:Envelope>"
    )


def _tag_pattern(tag: str) -> "re.Pattern[str]":
    name = re.escape(tag)
    return re.compile(
        rf"<(?:[\w.-]+:)?{name}(?:\s[^>]*)?>(.*?)</(?:[\w.-]+:)?{name}>",
        re.DOTALL,
    )


def _clean(value: str) -> str:
    value = _CDATA.sub(lambda m: m.group(1), value)
    return html.unescape(value).strip()


class SoapTagExtractor:
    """Reads leaf values out of a SOAP response body.

    Usage:
        reply = SoapTagExtractor(response.text)
        if reply.fault():
            ...
        code = reply.first("code")
    """

    def __init__(self, body: str):
        self.body = body or ""

    def first(self, tag: str, default: Optional[str] = None) -> Optional[str]:
        match = _tag_pattern(tag).search(self.body)
        return _clean(match.group(1)) if match else default

    def all(self, tag: str) -> List[str]:
        return [_clean(m) for m in _tag_pattern(tag).findall(self.body)]

    def values(self, *tags: str) -> Dict[str, Optional[str]]:
        return {tag: self.first(tag) for tag in tags}

    def blocks(self, tag: str) -> List["SoapTagExtractor"]:
        """Sub-extractors for each repeated ``tag`` element."""
        return [SoapTagExtractor(m) for m in _tag_pattern(tag).findall(self.body)]

    def fault(self) -> Optional[str]:
        """SOAP fault string, if the response is a fault."""
        return self.first("faultstring")

    def is_success(self, tag: str = "code") -> bool:
        return self.first(tag) in SUCCESS_CODES
