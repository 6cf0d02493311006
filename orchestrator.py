"""
Bounded-concurrency download of workshop items through SteamCMD.

Each item gets up to ``max_retries`` attempts. An attempt wipes the item's
content directory, runs SteamCMD and validates what landed on disk. When an
item runs out of attempts the whole run is aborted: nothing new is
dispatched, but tasks that are already running finish their current attempt
and keep whatever they downloaded.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Set

from errors import ProcessSpawnError
from steamcmd import SteamCmd, extract_steamcmd_error, strip_ansi
from telemetry import start_span
from utils import dedupe_keep_order, has_files, remove_tree, tail

OUTPUT_TAIL_CHARS = 2000


@dataclass(frozen=True)
class DownloadSettings:
    concurrency: int = 3
    max_retries: int = 5
    retry_delay: float = 10.0
    validation_passes: int = 3
    validation_delay: float = 2.0


@dataclass(frozen=True)
class AttemptResult:
    ok: bool
    reason: str | None = None


@dataclass
class RunResult:
    succeeded: Set[str] = field(default_factory=set)
    failed_ids: Set[str] = field(default_factory=set)
    skipped_ids: List[str] = field(default_factory=list)
    failed: bool = False
    max_in_flight: int = 0

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


class RunContext:
    """Shared state of one ``DownloadOrchestrator.run`` call."""

    def __init__(self, app_id: str, item_ids: Iterable[str], concurrency: int) -> None:
        self.app_id = app_id
        self.queue: deque[str] = deque(dedupe_keep_order(str(i) for i in item_ids))
        self.total = len(self.queue)
        self.abort = threading.Event()
        self.slots = threading.BoundedSemaphore(concurrency)
        self.slots_total = concurrency
        self.max_in_flight = 0
        self.succeeded: Set[str] = set()
        self.failed_ids: Set[str] = set()
        self._in_flight = 0
        self._lock = threading.Lock()

    def task_started(self) -> None:
        with self._lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)

    def task_finished(self, item_id: str, ok: bool) -> None:
        with self._lock:
            self._in_flight -= 1
            if ok:
                self.succeeded.add(item_id)
            else:
                self.failed_ids.add(item_id)


class DownloadOrchestrator:
    def __init__(
        self,
        steamcmd: SteamCmd,
        settings: DownloadSettings,
        *,
        validator: Callable[[Path], bool] = has_files,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.steamcmd = steamcmd
        self.settings = settings
        self.validator = validator
        self.sleep = sleep
        # Item directories never overlap, so one lock for every
        # delete/existence check is enough.
        self.fs_lock = threading.Lock()

    def run(self, app_id: str, item_ids: Iterable[str]) -> RunResult:
        if not app_id:
            raise ValueError("app_id must not be empty")
        if self.settings.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.settings.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        ctx = RunContext(str(app_id), item_ids, self.settings.concurrency)
        with start_span(
            "download.run",
            {
                "steam.app_id": ctx.app_id,
                "download.items": ctx.total,
                "download.concurrency": self.settings.concurrency,
            },
        ):
            logging.info(
                "Downloading %s item(s) for app %s (concurrency=%s, attempts=%s)",
                ctx.total,
                ctx.app_id,
                self.settings.concurrency,
                self.settings.max_retries,
            )
            futures: List[Future] = []
            with ThreadPoolExecutor(
                max_workers=self.settings.concurrency,
                thread_name_prefix="workshop-dl",
            ) as pool:
                while ctx.queue and not ctx.abort.is_set():
                    ctx.slots.acquire()
                    if ctx.abort.is_set():
                        ctx.slots.release()
                        break
                    item_id = ctx.queue.popleft()
                    ctx.task_started()
                    futures.append(pool.submit(self._run_task, ctx, item_id))
            # leaving the executor joins every outstanding task
            for future in futures:
                future.result()

        result = RunResult(
            succeeded=set(ctx.succeeded),
            failed_ids=set(ctx.failed_ids),
            skipped_ids=list(ctx.queue),
            failed=ctx.abort.is_set() or bool(ctx.failed_ids),
            max_in_flight=ctx.max_in_flight,
        )
        self._log_summary(ctx, result)
        return result

    def _run_task(self, ctx: RunContext, item_id: str) -> None:
        ok = False
        try:
            ok = self.download_one(ctx.app_id, item_id, ctx.abort)
        except Exception:
            logging.exception("Unexpected error while downloading %s", item_id)
            ctx.abort.set()
        finally:
            ctx.task_finished(item_id, ok)
            ctx.slots.release()

    def download_one(
        self,
        app_id: str,
        item_id: str,
        abort: threading.Event | None = None,
    ) -> bool:
        """Download one item, retrying with linear backoff.

        Returns True once an attempt produced a valid content directory.
        When every attempt fails ``abort`` is set and False is returned. A
        task whose ``abort`` is already set stops before its next attempt.
        """
        abort = abort if abort is not None else threading.Event()
        attempts = self.settings.max_retries
        with start_span(
            "download.item",
            {"steam.app_id": str(app_id), "steam.item_id": str(item_id)},
        ) as span:
            for attempt in range(1, attempts + 1):
                if attempt > 1 and abort.is_set():
                    logging.warning(
                        "Item %s: run aborted, not starting attempt %s/%s",
                        item_id,
                        attempt,
                        attempts,
                    )
                    span.set_attribute("download.outcome", "aborted")
                    return False

                logging.info("[attempt %s/%s] Item %s", attempt, attempts, item_id)
                try:
                    result = self._attempt(app_id, item_id)
                except Exception as exc:
                    logging.exception("Item %s: attempt %s crashed", item_id, attempt)
                    result = AttemptResult(False, f"{type(exc).__name__}: {exc}")

                if result.ok:
                    logging.info("Item %s downloaded", item_id)
                    span.set_attribute("download.attempts", attempt)
                    span.set_attribute("download.outcome", "success")
                    return True

                logging.error(
                    "Item %s: attempt %s/%s failed: %s",
                    item_id,
                    attempt,
                    attempts,
                    result.reason or "unknown reason",
                )
                if attempt < attempts:
                    delay = attempt * self.settings.retry_delay
                    logging.info("Item %s: retrying in %.0fs", item_id, delay)
                    self.sleep(delay)

            span.set_attribute("download.attempts", attempts)
            span.set_attribute("download.outcome", "exhausted")
        logging.error("Item %s failed after %s attempt(s), aborting run", item_id, attempts)
        abort.set()
        return False

    def _attempt(self, app_id: str, item_id: str) -> AttemptResult:
        target = self.steamcmd.content_dir(app_id, item_id)
        with self.fs_lock:
            if remove_tree(target):
                logging.debug("Removed previous content at %s", target)

        try:
            result = self.steamcmd.download_item(app_id, item_id)
        except ProcessSpawnError as exc:
            return AttemptResult(False, str(exc))

        parsed_error = extract_steamcmd_error(result.output)
        if not result.ok or parsed_error:
            if result.timed_out:
                reason = "steamcmd timed out"
            else:
                reason = parsed_error or f"steamcmd exit code {result.exit_code}"
            diagnostics = self.steamcmd.diagnostics(item_id)
            if diagnostics:
                logging.error("SteamCMD diagnostics for %s: %s", item_id, diagnostics)
            output_tail = tail(strip_ansi(result.output), OUTPUT_TAIL_CHARS).strip()
            if output_tail:
                logging.debug("SteamCMD output tail for %s:\n%s", item_id, output_tail)
            return AttemptResult(False, reason)

        if self._validate(target):
            return AttemptResult(True)
        return AttemptResult(False, f"no files found at {target}")

    def _validate(self, target: Path) -> bool:
        passes = max(1, self.settings.validation_passes)
        for index in range(1, passes + 1):
            with self.fs_lock:
                if self.validator(target):
                    return True
            if index < passes:
                logging.debug(
                    "Content at %s not ready (check %s/%s)", target, index, passes
                )
                self.sleep(self.settings.validation_delay)
        return False

    @staticmethod
    def _log_summary(ctx: RunContext, result: RunResult) -> None:
        logging.debug(
            "Peak concurrent downloads: %s of %s", result.max_in_flight, ctx.slots_total
        )
        if not result.failed:
            logging.info("All %s item(s) downloaded", len(result.succeeded))
            return
        logging.error(
            "Download aborted: %s of %s item(s) downloaded",
            len(result.succeeded),
            ctx.total,
        )
        if result.failed_ids:
            logging.error("Failed: %s", ", ".join(sorted(result.failed_ids)))
        if result.skipped_ids:
            logging.error("Not started: %s", ", ".join(result.skipped_ids))
