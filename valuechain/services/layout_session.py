"""
Layout session — the dirty buffer behind an open canvas.

Drag frames and zoom/pan changes land in an in-memory buffer; nothing is
written until the buffer is flushed. The session has two states:

    clean ──(move_node / set_viewport)──▶ dirty
    dirty ──(flush ok)──────────────────▶ clean
    dirty ──(flush failed)──────────────▶ dirty   (buffer kept)
    dirty ──(chain gone)────────────────▶ clean   (buffer dropped)

Buffered positions of segments deleted in the meantime are pruned and the
rest of the buffer is written. When the chain itself no longer exists
(merged, split or deleted) the buffer is dropped and the session may move
on to another chain.

Flush triggers:
    switch_chain()        navigating to another chain flushes the old one first
    close()               editor teardown
    flush_best_effort()   page unload; never raises
    maybe_autosave(now)   debounced save once the buffer has been quiet

The writer is any callable with the signature of layout_service.save_layout
bound to a tenant: ``writer(chain_id, nodes, viewport)``. Sessions are
single-threaded.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from flask import current_app

from valuechain.core.exceptions import NotFoundError, ValidationError
from valuechain.services import layout_service

logger = logging.getLogger(__name__)

STATE_CLEAN = "clean"
STATE_DIRTY = "dirty"

DEFAULT_DEBOUNCE_SECONDS = 1.5


@dataclass
class FlushResult:
    """Outcome of a flush. error is set only when ok is False.

    dropped is True when the buffer was discarded because its chain is gone.
    """
    ok: bool
    saved_nodes: int = 0
    error: Exception | None = None
    dropped: bool = False

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "saved_nodes": self.saved_nodes,
            "dropped": self.dropped,
            "error": str(self.error) if self.error else None,
        }


@dataclass
class _Buffer:
    nodes: dict[str, tuple[float, float]] = field(default_factory=dict)
    viewport: dict | None = None

    def is_empty(self) -> bool:
        return not self.nodes and self.viewport is None

    def payload(self) -> tuple[list[dict], dict | None]:
        nodes = [{"segment_id": sid, "x": x, "y": y} for sid, (x, y) in self.nodes.items()]
        return nodes, dict(self.viewport) if self.viewport else None


class LayoutSession:
    """Buffers canvas edits for one open chain and flushes them on demand."""

    def __init__(
        self,
        writer: Callable,
        chain_id: str,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._writer = writer
        self._clock = clock
        self.chain_id = chain_id
        self.debounce_seconds = debounce_seconds
        self.state = STATE_CLEAN
        self.last_error: Exception | None = None
        self._buffer = _Buffer()
        self._last_change_at: float | None = None

    @classmethod
    def for_tenant(cls, tenant_id: int, chain_id: str) -> "LayoutSession":
        """Session that writes through layout_service with the app's debounce."""
        def writer(target_chain_id, nodes, viewport):
            return layout_service.save_layout(tenant_id, target_chain_id, nodes, viewport)

        debounce = current_app.config.get(
            "LAYOUT_AUTOSAVE_DEBOUNCE_SECONDS", DEFAULT_DEBOUNCE_SECONDS,
        )
        return cls(writer, chain_id, debounce_seconds=float(debounce))

    # ── Edits ────────────────────────────────────────────────────────────

    def move_node(self, segment_id: str, x: float, y: float) -> None:
        self._buffer.nodes[segment_id] = (x, y)
        self._touch()

    def set_viewport(self, zoom: float, pan_x: float, pan_y: float) -> None:
        self._buffer.viewport = {
            "zoom": layout_service.clamp_zoom(zoom),
            "pan_x": pan_x,
            "pan_y": pan_y,
        }
        self._touch()

    def has_unsaved_changes(self) -> bool:
        return self.state == STATE_DIRTY

    def discard(self) -> None:
        """Drop buffered edits without writing them."""
        self._buffer = _Buffer()
        self._last_change_at = None
        self.state = STATE_CLEAN

    # ── Flushing ─────────────────────────────────────────────────────────

    def flush(self) -> FlushResult:
        """Write the buffer. On failure the buffer and dirty state are kept,
        except when the chain no longer exists (then the buffer is dropped)."""
        if self._buffer.is_empty():
            self.state = STATE_CLEAN
            return FlushResult(ok=True)

        try:
            saved = self._write()
        except NotFoundError as exc:
            logger.warning(
                "Layout buffer dropped, chain no longer exists chain_id=%s nodes=%s",
                self.chain_id, len(self._buffer.nodes),
            )
            self.discard()
            self.last_error = exc
            return FlushResult(ok=False, error=exc, dropped=True)
        except Exception as exc:
            self.last_error = exc
            logger.warning(
                "Layout flush failed chain_id=%s nodes=%s: %s",
                self.chain_id, len(self._buffer.nodes), exc,
            )
            return FlushResult(ok=False, error=exc)

        self.last_error = None
        self.discard()
        logger.debug("Layout flushed chain_id=%s nodes=%s", self.chain_id, saved)
        return FlushResult(ok=True, saved_nodes=saved)

    def switch_chain(self, new_chain_id: str) -> FlushResult:
        """Flush the current chain, then start buffering for new_chain_id.

        If the flush fails the session stays on the current chain, unless
        that chain no longer exists.
        """
        result = self.flush()
        if result.ok or result.dropped:
            self.chain_id = new_chain_id
        return result

    def close(self) -> FlushResult:
        return self.flush()

    def flush_best_effort(self) -> bool:
        """Flush on page unload. Errors are logged, never raised."""
        try:
            return self.flush().ok
        except Exception:
            logger.exception("Best-effort layout flush crashed chain_id=%s", self.chain_id)
            return False

    # ── Debounced autosave ───────────────────────────────────────────────

    def autosave_due(self, now: float | None = None) -> bool:
        if self.state != STATE_DIRTY or self._last_change_at is None:
            return False
        now = self._clock() if now is None else now
        return now - self._last_change_at >= self.debounce_seconds

    def maybe_autosave(self, now: float | None = None) -> FlushResult | None:
        """Flush if the buffer has been quiet long enough, else do nothing."""
        if not self.autosave_due(now):
            return None
        return self.flush()

    def _write(self) -> int:
        """Send the buffer; prune deleted segments once and resend the rest."""
        nodes, viewport = self._buffer.payload()
        try:
            self._writer(self.chain_id, nodes, viewport)
        except ValidationError as exc:
            unknown = exc.details.get("unknown_ids") or []
            stale = [sid for sid in self._buffer.nodes if sid in unknown]
            if not stale:
                raise
            for segment_id in stale:
                del self._buffer.nodes[segment_id]
            logger.info(
                "Pruned buffered positions of deleted segments chain_id=%s pruned=%s",
                self.chain_id, len(stale),
            )
            if self._buffer.is_empty():
                return 0
            nodes, viewport = self._buffer.payload()
            self._writer(self.chain_id, nodes, viewport)
        return len(nodes)

    def _touch(self) -> None:
        self.state = STATE_DIRTY
        self._last_change_at = self._clock()
