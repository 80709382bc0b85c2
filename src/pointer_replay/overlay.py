"""Operator-facing page overlays: status badges, replay ripples and info panels."""

from __future__ import annotations

import logging
from typing import Any

from pointer_replay.constants import DRAW_PANEL_ID, FILTER_PANEL_ID, OVERLAY_Z_INDEX, RIPPLE_STYLE_ID
from pointer_replay.frames import page_is_closed

logger = logging.getLogger(__name__)

_SET_BADGE_SCRIPT = """
([id, enabled, html, background, color, top, zIndex]) => {
  const existing = document.getElementById(id);
  if (existing) existing.remove();
  if (!enabled || !document.body) return;
  const badge = document.createElement('div');
  badge.id = id;
  badge.innerHTML = html;
  badge.style.cssText = [
    'position: fixed', `top: ${top}px`, 'right: 10px', `background: ${background}`,
    `color: ${color}`, 'padding: 8px 16px', 'border-radius: 4px',
    'font: bold 14px monospace', `z-index: ${zIndex}`, 'pointer-events: none',
    'box-shadow: 0 2px 8px rgba(0,0,0,0.3)',
  ].join(';');
  document.body.appendChild(badge);
}
"""

# Idempotent per document: the style element doubles as the install marker.
_INSTALL_RIPPLE_SCRIPT = """
([styleId]) => {
  if (document.getElementById(styleId)) return false;
  if (!document.head) return false;
  const style = document.createElement('style');
  style.id = styleId;
  style.textContent =
    '@keyframes pointerReplayRipple {' +
    '0% { transform: scale(1); opacity: 1; }' +
    '100% { transform: scale(3); opacity: 0; } }';
  document.head.appendChild(style);
  return true;
}
"""

_SHOW_RIPPLE_SCRIPT = """
([x, y, canvas]) => {
  if (!document.body) return;
  const dot = document.createElement('div');
  dot.style.cssText = [
    'position: fixed', `left: ${x}px`, `top: ${y}px`,
    'width: 20px', 'height: 20px', 'margin-left: -10px', 'margin-top: -10px',
    `border: 3px solid ${canvas ? '#00ff00' : '#0099ff'}`, 'border-radius: 50%',
    'pointer-events: none', 'z-index: 2147483644',
    'animation: pointerReplayRipple 0.6s ease-out',
  ].join(';');
  document.body.appendChild(dot);
  setTimeout(() => dot.remove(), 600);
}
"""


async def set_badge(
    page: Any,
    badge_id: str,
    enabled: bool,
    *,
    text: str = "",
    background: str = "red",
    color: str = "white",
    top: int = 10,
) -> None:
    if page_is_closed(page):
        return
    try:
        await page.evaluate(
            _SET_BADGE_SCRIPT,
            [badge_id, enabled, text, background, color, top, OVERLAY_Z_INDEX],
        )
    except Exception as exc:
        logger.debug("[overlay] badge %s update failed: %s", badge_id, exc)


async def install_ripple_helper(frame: Any) -> bool:
    return bool(await frame.evaluate(_INSTALL_RIPPLE_SCRIPT, [RIPPLE_STYLE_ID]))


async def show_ripple(frame: Any, x: float, y: float, *, canvas: bool) -> None:
    try:
        await frame.evaluate(_SHOW_RIPPLE_SCRIPT, [x, y, canvas])
    except Exception as exc:
        logger.debug("[overlay] ripple failed: %s", exc)


# Text nodes only: labels and patterns come from request urls and config.
_SET_PANEL_SCRIPT = """
([id, title, lines, empty, placement, zIndex]) => {
  const existing = document.getElementById(id);
  if (existing) existing.remove();
  if (!document.body) return;
  const panel = document.createElement('div');
  panel.id = id;
  panel.style.cssText = [
    'position: fixed', ...placement, 'background: rgba(255,255,255,0.95)',
    'color: black', 'padding: 12px 16px', 'border-radius: 6px',
    'font: 14px monospace', 'line-height: 1.8', 'max-width: 300px',
    `z-index: ${zIndex}`, 'pointer-events: none', 'box-shadow: 0 4px 12px rgba(0,0,0,0.4)',
  ].join(';');
  const header = document.createElement('div');
  header.style.cssText = 'margin-bottom: 6px; border-bottom: 1px solid #ddd; font-weight: bold';
  header.textContent = title;
  panel.appendChild(header);
  if (!lines.length) {
    const none = document.createElement('div');
    none.style.cssText = 'color: #999; font-style: italic';
    none.textContent = empty;
    panel.appendChild(none);
  }
  for (const line of lines) {
    const row = document.createElement('div');
    row.style.color = '#333';
    row.textContent = line;
    panel.appendChild(row);
  }
  document.body.appendChild(panel);
}
"""

_FILTER_PLACEMENT = ["left: 10px", "bottom: 10px"]
_DRAW_PLACEMENT = [
    "right: 10px",
    "top: 50%",
    "transform: translateY(-50%)",
    "max-height: 300px",
    "overflow-y: auto",
]


async def _set_panel(
    page: Any, panel_id: str, title: str, lines: list[str], empty: str, placement: list[str]
) -> None:
    if page_is_closed(page):
        return
    try:
        await page.evaluate(
            _SET_PANEL_SCRIPT, [panel_id, title, lines, empty, placement, OVERLAY_Z_INDEX]
        )
    except Exception as exc:
        logger.debug("[overlay] panel %s update failed: %s", panel_id, exc)


async def show_filter_patterns(page: Any, patterns: list[str]) -> None:
    await _set_panel(page, FILTER_PANEL_ID, "Filter Patterns:", list(patterns), "None", _FILTER_PLACEMENT)


async def show_draw_labels(page: Any, labels: list[str]) -> None:
    """Numbered list of the draws seen in the current replay."""
    lines = [f"{n}. {label}" for n, label in enumerate(labels, start=1)]
    await _set_panel(page, DRAW_PANEL_ID, "Draw:", lines, "No draw", _DRAW_PLACEMENT)
