"""Extracts the single XML-tagged tool call from an assistant turn.

The expected shape is one top-level element named after the tool whose
children are parameters:

    I'll look at the config first.
    <read_file>
    <path>src/config.py</path>
    </read_file>

Parsing never raises. Failures come back as a ParseResult carrying a
MalformedToolCall so the dispatcher can hand the reason to the model.
Tags naming a known tool are preferred; other tag names are only
considered when no known tool tag is present. Whether an unknown tool
exists or is allowed is not decided here.
"""

import re
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, FrozenSet, List, Optional

from .errors import MalformedToolCall
from .logger import get_logger, truncate as log_truncate
from .tool_registry import COMPLEX_PARAMS, TOOL_NAMES, get_complex_content_tools, get_tool_def

log = get_logger("parser")

_OPEN_TAG_RE = re.compile(r"<([A-Za-z_][A-Za-z0-9_\-]*)>")
_THINKING_RE = re.compile(r"<thinking>.*?</thinking>\s*", re.DOTALL)
_KNOWN_TOOLS = frozenset(TOOL_NAMES)


@dataclass
class ToolCall:
    """A structured request from the model for one concrete action."""
    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ParseResult:
    """Either a ToolCall or the reason parsing failed."""
    tool_call: Optional[ToolCall] = None
    error: Optional[MalformedToolCall] = None

    @property
    def ok(self) -> bool:
        return self.tool_call is not None


@dataclass
class Element:
    """One `<name>inner</name>` span found while scanning."""
    name: str
    inner: str
    start: int
    end: int


def strip_thinking_blocks(content: str) -> str:
    """Remove <thinking> blocks from content."""
    return _THINKING_RE.sub("", content)


def scan_elements(text: str, greedy: FrozenSet[str] = frozenset(),
                  names: Optional[AbstractSet[str]] = None) -> List[Element]:
    """Find the non-overlapping top-level elements of `text`, in order.

    Names in `greedy` close at the LAST matching closing tag so their body
    may contain the same tag (patches and file bodies quoting XML). Other
    names close at the first matching tag. An opening tag without a
    closing tag is treated as prose. When `names` is given, tags with
    other names are prose too.
    """
    elements: List[Element] = []
    pos = 0
    while True:
        m = _OPEN_TAG_RE.search(text, pos)
        if m is None:
            break
        name = m.group(1)
        if names is not None and name not in names:
            pos = m.end()
            continue
        close_tag = f"</{name}>"
        if name in greedy:
            close_at = text.rfind(close_tag)
        else:
            close_at = text.find(close_tag, m.end())
        if close_at < m.end():
            pos = m.end()
            continue
        elements.append(Element(
            name=name,
            inner=text[m.end():close_at],
            start=m.start(),
            end=close_at + len(close_tag),
        ))
        pos = close_at + len(close_tag)
    return elements


def _clean_value(name: str, value: str) -> str:
    if name in COMPLEX_PARAMS:
        return value.strip("\n")
    return value.strip()


def parse_structured(value: str) -> List[Dict[str, str]]:
    """Parse `<item><a>..</a><b>..</b></item>...` into a list of mappings."""
    entries = []
    for item in scan_elements(value):
        fields: Dict[str, str] = {}
        for child in scan_elements(item.inner, greedy=frozenset({"diff", "content"})):
            fields.setdefault(child.name, _clean_value(child.name, child.inner))
        entries.append(fields)
    return entries


def parse_parameters(tool_name: str, inner: str) -> Dict[str, Any]:
    """Extract parameter name/value pairs from a tool element body."""
    tool_def = get_tool_def(tool_name)
    structured = {p.name for p in tool_def.params if p.structured} if tool_def else set()

    params: Dict[str, Any] = {}
    for child in scan_elements(inner, greedy=frozenset(COMPLEX_PARAMS)):
        if child.name in params:
            continue
        if child.name in structured:
            params[child.name] = parse_structured(child.inner)
        else:
            params[child.name] = _clean_value(child.name, child.inner)
    return params


def parse_tool_call(content: str) -> ParseResult:
    """Parse exactly one tool call out of one assistant turn."""
    text = strip_thinking_blocks(content or "")
    greedy = frozenset(get_complex_content_tools())
    # Known tool tags win over stray markup in the prose
    elements = scan_elements(text, greedy=greedy, names=_KNOWN_TOOLS)
    if not elements:
        elements = scan_elements(text, greedy=greedy)

    if not elements:
        log.warning("parse: no tool call in %s", log_truncate(text, 120))
        return ParseResult(error=MalformedToolCall(
            "No tool call found. Every response must contain exactly one tool call "
            "formatted as <tool_name><param>value</param></tool_name>.",
            found=0,
        ))

    if len(elements) > 1:
        names = ", ".join(e.name for e in elements)
        log.warning("parse: %d top-level tool tags (%s)", len(elements), names)
        return ParseResult(error=MalformedToolCall(
            f"Found {len(elements)} tool calls ({names}). "
            "Only one tool may be used per message.",
            found=len(elements),
        ))

    element = elements[0]
    params = parse_parameters(element.name, element.inner)

    tool_def = get_tool_def(element.name)
    if tool_def is not None:
        # Payload params may be empty (an empty patch surfaces later as NoDiffBlocksFound)
        missing = [
            name for name in tool_def.required_params(present=set(params))
            if name not in params or (name not in COMPLEX_PARAMS and not params[name])
        ]
        if missing:
            log.warning("parse: %s missing required params %s", element.name, missing)
            return ParseResult(error=MalformedToolCall(
                f"Tool '{element.name}' is missing required parameter(s): {', '.join(missing)}.",
                tool_name=element.name,
                missing_params=missing,
                found=1,
            ))

    return ParseResult(tool_call=ToolCall(name=element.name, parameters=params))
