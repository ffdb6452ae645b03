# Overview: Outbound side-channel dispatcher for audit writes, OTP delivery and admin alerts.

"""
Outbound dispatcher.

WHY: Side effects (audit rows, email) must never block or roll back the
operation that caused them. Services finish and commit their unit of work,
then hand a job to the dispatcher. A failing job is logged and dropped.

Modes (OUTBOUND_MODE):
- "thread": jobs run on a ThreadPoolExecutor, each inside its own app context
  (and therefore its own database session).
- "inline": jobs run immediately in the caller's context. Used by tests so
  results are observable synchronously.

Jobs receive plain data (ids, dicts, strings), never ORM instances, because
thread-mode jobs run on a different session.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import RLock

from flask import current_app

from ..extensions import db


MODE_THREAD = "thread"
MODE_INLINE = "inline"


class OutboundDispatcher:
    def __init__(self, app=None):
        self._executor: ThreadPoolExecutor | None = None
        self._lock = RLock()
        self.mode = MODE_THREAD
        self.dispatched = 0
        self.failed = 0
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        mode = str(app.config.get("OUTBOUND_MODE", MODE_THREAD)).lower()
        if mode not in (MODE_THREAD, MODE_INLINE):
            raise ValueError(f"Unknown OUTBOUND_MODE: {mode}")
        self.mode = mode
        if mode == MODE_THREAD:
            self._executor = ThreadPoolExecutor(
                max_workers=int(app.config.get("OUTBOUND_WORKERS", 2)),
                thread_name_prefix="pettycash-outbound",
            )
        app.extensions["outbound"] = self

    def dispatch(self, name: str, func, /, *args, **kwargs) -> None:
        """Hand a job to the side channel. Never raises. Job kwargs may reuse any name."""
        with self._lock:
            self.dispatched += 1

        if self.mode == MODE_INLINE:
            self._run(name, func, args, kwargs)
            return

        app = current_app._get_current_object()
        try:
            self._executor.submit(self._run_in_context, app, name, func, args, kwargs)
        except RuntimeError:
            # Executor shut down (interpreter exit); run where we are
            app.logger.warning("Outbound executor unavailable, running %s inline", name)
            self._run(name, func, args, kwargs)

    def _run_in_context(self, app, name, func, args, kwargs) -> None:
        with app.app_context():
            self._run(name, func, args, kwargs)

    def _run(self, name, func, args, kwargs) -> None:
        try:
            func(*args, **kwargs)
        except Exception:
            with self._lock:
                self.failed += 1
            db.session.rollback()
            current_app.logger.exception("Outbound job %s failed", name)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


def dispatch(name: str, func, /, *args, **kwargs) -> None:
    current_app.extensions["outbound"].dispatch(name, func, *args, **kwargs)
