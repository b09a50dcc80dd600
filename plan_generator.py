# plan_generator.py
"""
Plan document generator.

Templates are plain text with Handlebars-like markers:

    {{field}}  {{a.b}}                      scalar placeholders
    {{#if field}} ... {{/if}}               kept only when `field` is truthy
    {{#each items}} ... {{/each}}           repeated once per list item

Inside a loop, names resolve against the current item first and then the
enclosing data; `{{this}}` is the item itself, `{{@index}}` its 0-based
position and `{{@number}}` its 1-based position.

Rendering never fails: unknown names render as "", and a block marker
without its partner is dropped while the text around it is kept.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Optional

from errors import UnknownPlanTypeError
from plan_templates import PLAN_TEMPLATES, PROCEDURE_COLUMNS

logger = logging.getLogger(__name__)

TAG_RE = re.compile(r"\{\{(.*?)\}\}", re.S)
BLOCKS = ("if", "each")
PLAN_SCOPES = ("organization", "department")


# ----------- AST -------------
@dataclass
class Text:
    value: str


@dataclass
class Var:
    path: str


@dataclass
class If:
    path: str
    body: List[Any] = field(default_factory=list)


@dataclass
class Each:
    path: str
    body: List[Any] = field(default_factory=list)


# ----------- Parsing -------------
def _tokenize(template):
    """Split a template into ("text", s), ("var", path), ("open", block, path), ("close", block)."""
    tokens = []
    pos = 0
    for m in TAG_RE.finditer(template):
        if m.start() > pos:
            tokens.append(("text", template[pos : m.start()]))
        tag = m.group(1).strip()
        if tag.startswith("#"):
            block, _, arg = tag[1:].partition(" ")
            if block in BLOCKS:
                tokens.append(("open", block, arg.strip()))
            else:
                logger.debug("Unknown block helper %r dropped", tag)
        elif tag.startswith("/"):
            tokens.append(("close", tag[1:].strip()))
        elif tag:
            tokens.append(("var", tag))
        pos = m.end()
    if pos < len(template):
        tokens.append(("text", template[pos:]))
    return tokens


def _parse_nodes(tokens, i, stack):
    nodes = []
    while i < len(tokens):
        tok = tokens[i]
        kind = tok[0]
        if kind == "text":
            nodes.append(Text(tok[1]))
            i += 1
        elif kind == "var":
            nodes.append(Var(tok[1]))
            i += 1
        elif kind == "open":
            _, block, path = tok
            body, i, closed = _parse_nodes(tokens, i + 1, stack + [block])
            if closed:
                nodes.append(If(path, body) if block == "if" else Each(path, body))
            else:
                logger.debug("Unclosed {{#%s %s}} treated as plain content", block, path)
                nodes.extend(body)
        else:
            block = tok[1]
            if stack and block == stack[-1]:
                return nodes, i + 1, True
            if block in stack:
                # closes an outer block: the current one was never closed
                return nodes, i, False
            logger.debug("Stray {{/%s}} dropped", block)
            i += 1
    return nodes, i, False


def parse(template: str) -> List[Any]:
    """
    Parse a template into a list of `Text`, `Var`, `If` and `Each` nodes.

    :param template: template source
    :return: list of AST nodes
    """
    nodes, _, _ = _parse_nodes(_tokenize(template or ""), 0, [])
    return nodes


def placeholders(template: str) -> List[str]:
    """Names referenced by a template (scalars and block arguments), in first-use order."""
    seen = []

    def walk(nodes):
        for n in nodes:
            if isinstance(n, Text):
                continue
            if n.path not in seen:
                seen.append(n.path)
            if isinstance(n, (If, Each)):
                walk(n.body)

    walk(parse(template))
    return seen


# ----------- Rendering -------------
@dataclass
class _Frame:
    value: Any
    index: Optional[int] = None


_MISSING = object()


def _lookup(path, frames):
    if path in ("this", "."):
        return frames[-1].value
    if path.startswith("@"):
        for f in reversed(frames):
            if f.index is not None:
                return f.index if path == "@index" else f.index + 1 if path == "@number" else None
        return None

    parts = path.split(".")
    if parts[0] == "this":
        current, parts = frames[-1].value, parts[1:]
    else:
        current = _MISSING
        for f in reversed(frames):
            if isinstance(f.value, Mapping) and parts[0] in f.value:
                current = f.value[parts[0]]
                break
        if current is _MISSING:
            return None
        parts = parts[1:]
    for part in parts:
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            return None
    return current


def stringify(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify(v) for v in value)
    return str(value)


def _render_nodes(nodes, frames, out):
    for n in nodes:
        if isinstance(n, Text):
            out.append(n.value)
        elif isinstance(n, Var):
            out.append(stringify(_lookup(n.path, frames)))
        elif isinstance(n, If):
            if _lookup(n.path, frames):
                _render_nodes(n.body, frames, out)
        elif isinstance(n, Each):
            items = _lookup(n.path, frames)
            if isinstance(items, (list, tuple)):
                for i, item in enumerate(items):
                    _render_nodes(n.body, frames + [_Frame(item, i)], out)


def render(template: str, data) -> str:
    """
    Merge `data` into `template`.

    Args:
        template (str): template source
        data (dict): field values; lists feed ``{{#each}}`` blocks

    Returns:
        str: the merged text, unescaped
    """
    out: List[str] = []
    _render_nodes(parse(template), [_Frame(data or {})], out)
    return "".join(out)


# ----------- Form data -------------
def rows_from_text(text, columns):
    """
    Parse a plan-builder list box: one row per line, cells separated by "|".

    Missing cells are "", extra cells are ignored, blank lines skipped.

    >>> rows_from_text("Payroll | 1 | 4", ["name", "priority", "rto"])
    [{'name': 'Payroll', 'priority': '1', 'rto': '4'}]
    """
    rows = []
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        cells = [c.strip() for c in line.split("|")]
        cells += [""] * (len(columns) - len(cells))
        rows.append(dict(zip(columns, cells)))
    return rows


def procedures_from_text(text):
    """Group "phase | task | owner | timing" lines into phases with task lists, keeping order."""
    phases = []
    by_name = {}
    for row in rows_from_text(text, PROCEDURE_COLUMNS):
        name = row.pop("phase")
        if name not in by_name:
            by_name[name] = {"phase": name, "tasks": []}
            phases.append(by_name[name])
        by_name[name]["tasks"].append(row)
    return phases


def nest_fields(values):
    """
    Turn dotted field ids into nested dicts.

    :param values: mapping like ``{"testingMaintenance.frequency": "Annual"}``
    :return: ``{"testingMaintenance": {"frequency": "Annual"}}``
    """
    out = {}
    for key, value in (values or {}).items():
        *parents, leaf = key.split(".")
        target = out
        for p in parents:
            target = target.setdefault(p, {})
        target[leaf] = value
    return out


# ----------- Plans -------------
@dataclass
class GeneratedPlan:
    plan_type: str
    title: str
    content: str


def build_context(scope, form_data, organization, today=None):
    """
    Field values handed to a plan template.

    Applies the form defaults (version 1.0, last reviewed today), exposes
    the organisation name and industry, and drops the department unless the
    plan is department scoped.
    """
    data = dict(form_data or {})
    today = today or date.today()
    if isinstance(organization, Mapping):
        org_name = organization.get("name", "")
        data.setdefault("industry", organization.get("industry", ""))
    else:
        org_name = organization or ""
    data["organization"] = org_name
    data["version"] = data.get("version") or "1.0"
    data["lastReviewed"] = data.get("lastReviewed") or today.isoformat()
    data["planScope"] = scope
    if scope != "department":
        data.pop("department", None)
    return data


def generate_plan(plan_type, scope, form_data, organization, today=None) -> GeneratedPlan:
    """
    Render the named plan template with the submitted form data.

    :param plan_type: key of `plan_templates.PLAN_TEMPLATES`
    :param scope: "organization" or "department"
    :param form_data: dict of form values (scalars, lists of dicts, nested dicts)
    :param organization: organisation name or ``{"name", "industry"}``
    :raises UnknownPlanTypeError: when no template exists for `plan_type`
    """
    template = PLAN_TEMPLATES.get(plan_type)
    if template is None:
        raise UnknownPlanTypeError(plan_type)
    data = build_context(scope, form_data, organization, today)
    title = render(template.title_template, data).strip() or template.title
    content = render(template.body_template, data)
    logger.info("Generated %s plan for %s (%d chars)", plan_type, data["organization"], len(content))
    return GeneratedPlan(plan_type=plan_type, title=title, content=content)
