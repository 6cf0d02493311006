import threading
from pathlib import Path
from typing import Callable, Dict, List, Sequence

import pytest

from config import Config
from steamcmd import ProcessResult, SteamCmd

APP_ID = "294100"


def make_page(app_id: str = APP_ID, item_ids: Sequence[str] = (), title: str = "") -> str:
    """Build a workshop page; listing ``item_ids`` makes it a collection page."""
    parts = [
        "<html><body>",
        f'<a href="https://steamcommunity.com/app/{app_id}">Workshop</a>',
    ]
    if title:
        parts.append(f'<div class="workshopItemTitle">{title}</div>')
    for item_id in item_ids:
        parts.append(
            '<div class="collectionItem">'
            f'<a href="https://steamcommunity.com/sharedfiles/filedetails/?id={item_id}">'
            f'<div class="collectionItemDetails">{item_id}</div></a></div>'
        )
    parts.append("</body></html>")
    return "\n".join(parts)


class FakeSteamCmdRunner:
    """Plays SteamCMD: on success it writes a file into the item's content dir.

    ``behaviour(item_id, call_number)`` decides each call's outcome; it may
    also return a ``ProcessResult`` or raise to simulate odd failures.
    """

    def __init__(
        self,
        steam_root: Path,
        behaviour: Callable[[str, int], object] | None = None,
        hold: float = 0.0,
    ) -> None:
        self.steam_root = steam_root
        self.behaviour = behaviour or (lambda _item, _n: True)
        self.hold = hold
        self.calls: List[str] = []
        self.counts: Dict[str, int] = {}
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, cmd, cwd, timeout) -> ProcessResult:
        if "+workshop_download_item" not in cmd:
            return ProcessResult(0, "Logged in OK")
        index = list(cmd).index("+workshop_download_item")
        app_id, item_id = cmd[index + 1], cmd[index + 2]
        with self._lock:
            self.calls.append(item_id)
            self.counts[item_id] = self.counts.get(item_id, 0) + 1
            call_number = self.counts[item_id]
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.hold:
                threading.Event().wait(self.hold)
            outcome = self.behaviour(item_id, call_number)
            if isinstance(outcome, ProcessResult):
                return outcome
            if outcome:
                target = self.content_dir(app_id, item_id)
                target.mkdir(parents=True, exist_ok=True)
                (target / f"attempt{call_number}.bin").write_text(f"{item_id}:{call_number}")
                return ProcessResult(0, f"Success. Downloaded item {item_id}")
            return ProcessResult(
                1, f"ERROR! Download item {item_id} failed (Failure)."
            )
        finally:
            with self._lock:
                self.active -= 1

    def content_dir(self, app_id: str, item_id: str) -> Path:
        return self.steam_root / "steamapps" / "workshop" / "content" / app_id / item_id


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []
        self._lock = threading.Lock()

    def __call__(self, delay: float) -> None:
        with self._lock:
            self.delays.append(delay)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_steamcmd(tmp_path):
    def factory(runner=None) -> SteamCmd:
        steamcmd_dir = tmp_path / "steamcmd"
        steamcmd_dir.mkdir(exist_ok=True)
        return SteamCmd(
            steamcmd_dir,
            runner=runner or FakeSteamCmdRunner(steamcmd_dir),
            platform="linux",
        )

    return factory


@pytest.fixture
def config(tmp_path) -> Config:
    steamcmd_dir = tmp_path / "steamcmd"
    return Config(
        steamcmd_dir=str(steamcmd_dir),
        steam_root=str(steamcmd_dir),
        concurrency=2,
        max_retries=2,
        retry_delay=0.0,
        validation_passes=1,
        validation_delay=0.0,
        steamcmd_timeout=None,
        http_timeout=5,
        http_retries=0,
        http_backoff=0.0,
        log_level="DEBUG",
        log_file="",
        skip_steamcmd_init=True,
    )
