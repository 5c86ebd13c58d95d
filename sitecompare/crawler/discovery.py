"""Clickable target discovery, click-by-id and the StateKey probe.

Discovery runs in the top document and in every reachable same-origin frame.
Each visible, enabled element matching the click finders is tagged with a
``data-sc-id`` attribute so it can be clicked again later without relying on
its position in the DOM.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import structlog

from sitecompare.constants import ACTION_ID_ATTRIBUTE, ACTION_TEXT_MAX_LEN, DEFAULT_CLICK_FINDERS
from sitecompare.exceptions import UnexpectedAlertError
from sitecompare.models.domain import Action, StateKey
from sitecompare.types import ActionKind

if TYPE_CHECKING:
    from sitecompare.browser.client import RemoteBrowserClient

logger = structlog.get_logger(__name__)

_FRAME_WALK_JS = """
function sameOriginDocs(rootDoc) {
  var out = [{doc: rootDoc, frameSrc: '', docKey: 'top', href: ''}];
  (function walk(doc, prefix) {
    var frames = doc.querySelectorAll('iframe,frame');
    for (var i = 0; i < frames.length; i++) {
      var f = frames[i];
      try {
        var cd = f.contentDocument;
        if (!cd) continue;
        var src = f.getAttribute('src') || '';
        var key = (prefix ? prefix + '>' : '') + 'iframe[' + (i + 1) + ']:' + src;
        var href = '';
        try { href = cd.location.href; } catch (e) { href = ''; }
        if (!href || href === 'about:blank') href = src;
        out.push({doc: cd, frameSrc: src, docKey: key, href: href});
        walk(cd, key);
      } catch (e) { /* cross-origin */ }
    }
  })(rootDoc, '');
  return out;
}
"""

DISCOVER_ACTIONS_JS = _FRAME_WALK_JS + """
var finders = arguments[0], excluded = arguments[1], idAttr = arguments[2], maxLen = arguments[3];
function visible(el) {
  var cs = el.ownerDocument.defaultView.getComputedStyle(el);
  if (!cs) return false;
  if (cs.display === 'none' || cs.visibility === 'hidden' || +cs.opacity === 0) return false;
  var r = el.getBoundingClientRect();
  return r.width > 0 && r.height > 0;
}
function canonText(s) {
  if (!s) return '';
  return s.replace(/\\u00A0/g, ' ').replace(/\\s+/g, ' ').trim().slice(0, maxLen);
}
var topWin = window.top || window;
if (typeof topWin.__scCounter !== "number") topWin.__scCounter = 0;
var out = [];
var docs = sameOriginDocs(document);
for (var d = 0; d < docs.length; d++) {
  var ctx = docs[d];
  var seen = new Set();
  var nodes = ctx.doc.querySelectorAll(finders.join(','));
  for (var n = 0; n < nodes.length; n++) {
    var el = nodes[n];
    if (seen.has(el)) continue;
    seen.add(el);
    if (!visible(el)) continue;
    if (el.hasAttribute('disabled') || el.getAttribute('aria-disabled') === 'true') continue;
    var skip = false;
    for (var x = 0; x < excluded.length; x++) {
      try { if (el.matches(excluded[x]) || el.closest(excluded[x])) { skip = true; break; } }
      catch (e) { /* invalid selector */ }
    }
    if (skip) continue;
    var id = el.getAttribute(idAttr);
    if (!id) {
      topWin.__scCounter += 1;
      id = "sc-" + topWin.__scCounter;
      el.setAttribute(idAttr, id);
    }
    var href = el.getAttribute('href') || '';
    if (!href && el.closest('a[href]')) href = el.closest('a[href]').getAttribute('href') || '';
    var tag = (el.tagName || '').toLowerCase();
    var kind = tag === 'a' ? 'a'
      : tag === 'button' ? 'button'
      : el.hasAttribute('onclick') ? 'onclick'
      : el.getAttribute('role') === 'link' ? 'role-link'
      : 'other';
    out.push({
      id: id,
      text: canonText(el.innerText || el.textContent || ''),
      href: href,
      kind: kind,
      onclick: el.getAttribute('onclick') || '',
      docKey: ctx.docKey,
      frameSrc: ctx.frameSrc
    });
  }
}
return out;
"""

CLICK_JS = _FRAME_WALK_JS + """
var idAttr = arguments[0], wanted = arguments[1];
var docs = sameOriginDocs(document);
for (var d = 0; d < docs.length; d++) {
  var doc = docs[d].doc;
  var el = doc.querySelector('[' + idAttr + '="' + wanted + '"]');
  if (!el) continue;
  try { el.scrollIntoView({block: 'center', inline: 'center'}); } catch (e) {}
  try {
    el.click();
  } catch (e) {
    var evt = new (doc.defaultView.MouseEvent)('click', {bubbles: true, cancelable: true});
    el.dispatchEvent(evt);
  }
  return true;
}
return false;
"""

STATE_JS = _FRAME_WALK_JS + """
var docs = sameOriginDocs(document);
var frames = [];
for (var d = 1; d < docs.length; d++) frames.push(docs[d].href || docs[d].frameSrc);
return {top: location.href, frames: frames};
"""

_CALL_RE = re.compile(r"([A-Za-z_$][\w$.]*)\s*\(([^)]*)\)")
_JS_SCHEME_RE = re.compile(r"^\s*javascript:\s*", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")


def script_signature(onclick: str, href: str = "") -> str | None:
    """Function name plus trimmed argument list of an inline handler.

    ``App.nav.open( 'x', 2 )`` gives ``open('x',2)``. The handler text falls
    back to a ``javascript:`` href. Returns None when there is no script.
    """
    text = onclick or ""
    if not text and _JS_SCHEME_RE.match(href or ""):
        text = _JS_SCHEME_RE.sub("", href)
    text = _WS_RE.sub(" ", text).strip()
    if not text:
        return None
    match = _CALL_RE.search(text)
    if not match:
        return text
    name = match.group(1).split(".")[-1]
    args = ",".join(a.strip() for a in match.group(2).split(","))
    return f"{name}({args})"


def parse_actions(raw: list[dict[str, Any]] | None) -> list[Action]:
    """Turn the discovery script output into typed actions."""
    actions: list[Action] = []
    for item in raw or []:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        try:
            kind = ActionKind(item.get("kind") or ActionKind.OTHER)
        except ValueError:
            kind = ActionKind.OTHER
        href = item.get("href") or ""
        actions.append(
            Action(
                id=str(item["id"]),
                text=(item.get("text") or "")[:ACTION_TEXT_MAX_LEN],
                href=href,
                kind=kind,
                document_key=item.get("docKey") or "top",
                frame_source=item.get("frameSrc") or "",
                script_signature=script_signature(item.get("onclick") or "", href),
            )
        )
    return actions


def make_state_key(top_url: str, frame_sources: list[str] | tuple[str, ...]) -> StateKey:
    return StateKey(top_url=top_url, frame_sources=tuple(sorted(frame_sources)))


async def state_key(client: RemoteBrowserClient) -> StateKey:
    """Probe the browser for its current StateKey."""
    raw = await client.execute_script(STATE_JS) or {}
    top_url = raw.get("top") or await client.current_url()
    return make_state_key(top_url, [f for f in raw.get("frames") or [] if f])


async def discover(
    client: RemoteBrowserClient,
    finders: list[str] | None = None,
    exclude_selectors: list[str] | None = None,
) -> list[Action]:
    """List the clickable targets of the current page, tagging them with ids."""
    raw = await client.execute_script(
        DISCOVER_ACTIONS_JS,
        finders or DEFAULT_CLICK_FINDERS,
        exclude_selectors or [],
        ACTION_ID_ATTRIBUTE,
        ACTION_TEXT_MAX_LEN,
    )
    actions = parse_actions(raw)
    logger.debug("actions_discovered", side=client.side.value, count=len(actions))
    return actions


async def click_action(client: RemoteBrowserClient, action_id: str) -> bool:
    """Click the element tagged ``action_id``; False if it is gone."""
    await client.drain_network_events()
    try:
        clicked = bool(await client.execute_script(CLICK_JS, ACTION_ID_ATTRIBUTE, action_id))
    except UnexpectedAlertError:
        # the click opened a native dialog before the script returned
        clicked = True
    if not clicked:
        logger.warning("click_target_missing", side=client.side.value, action=action_id)
    return clicked
