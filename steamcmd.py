import logging
import re
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Sequence

from errors import NetworkError, ProcessSpawnError, SteamCmdError
from steam_api import SteamClient
from utils import ensure_dir, tail

INSTALL_ATTEMPTS = 3
INSTALL_BACKOFF_SECONDS = 5.0
TIMEOUT_SENTINEL = "\nsteamcmd timed out"
# steamcmd exits with 7 right after it has updated itself
SELF_UPDATE_EXIT_CODE = 7

_INSTALLERS = {
    "win32": ("steamcmd.exe", "steamcmd.zip"),
    "darwin": ("steamcmd.sh", "steamcmd_osx.tar.gz"),
    "linux": ("steamcmd.sh", "steamcmd_linux.tar.gz"),
}
_INSTALLER_BASE_URL = "https://steamcdn-a.akamaihd.net/client/installer/"


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    output: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


ProcessRunner = Callable[[Sequence[str], Path | None, float | None], ProcessResult]

_ANSI_RE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")


def strip_ansi(value: str) -> str:
    return _ANSI_RE.sub("", value)


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def run_process(
    cmd: Sequence[str],
    cwd: Path | None = None,
    timeout: float | None = None,
) -> ProcessResult:
    """Run ``cmd`` to completion and capture stdout and stderr together.

    With a ``timeout`` the process is killed once it expires and
    ``TIMEOUT_SENTINEL`` is appended to whatever output was captured.
    """
    try:
        result = subprocess.run(
            list(cmd),
            cwd=str(cwd) if cwd else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        return ProcessResult(-1, _decode(exc.output) + TIMEOUT_SENTINEL, timed_out=True)
    except OSError as exc:
        raise ProcessSpawnError(f"Cannot launch {cmd[0]}: {exc}") from exc
    return ProcessResult(result.returncode, result.stdout or "")


def extract_steamcmd_error(output: str) -> str | None:
    cleaned = strip_ansi(output or "").replace("\r", "\n")
    specific_match = re.search(
        r"(ERROR!\s+Download item\s+\d+\s+failed\s+\([^)]+\)\.)",
        cleaned,
        flags=re.IGNORECASE | re.DOTALL,
    )
    if specific_match:
        return " ".join(specific_match.group(1).split())
    for raw_line in cleaned.splitlines():
        line = raw_line.strip()
        if "ERROR!" in line:
            return " ".join(line.split())
    return None


def _read_tail_lines(path: Path, max_bytes: int = 256 * 1024) -> List[str]:
    if not path.is_file():
        return []
    try:
        with path.open("rb") as fh:
            fh.seek(0, 2)
            size = fh.tell()
            fh.seek(max(0, size - max_bytes))
            data = fh.read().decode("utf-8", errors="ignore")
    except OSError:
        return []
    return [line.strip() for line in data.splitlines() if line.strip()]


class SteamCmd:
    """Paths and command lines of one SteamCMD installation."""

    def __init__(
        self,
        steamcmd_dir: Path,
        steam_root: Path | None = None,
        *,
        timeout: float | None = None,
        runner: ProcessRunner = run_process,
        platform: str | None = None,
    ) -> None:
        self.steamcmd_dir = Path(steamcmd_dir).resolve()
        self.steam_root = Path(steam_root).resolve() if steam_root else self.steamcmd_dir
        self.timeout = timeout
        self.runner = runner
        self.platform = _platform_key(platform or sys.platform)

    @property
    def executable(self) -> Path:
        return self.steamcmd_dir / _INSTALLERS[self.platform][0]

    @property
    def installer_url(self) -> str:
        return _INSTALLER_BASE_URL + _INSTALLERS[self.platform][1]

    def is_installed(self) -> bool:
        return self.executable.is_file()

    def content_dir(self, app_id: str, item_id: str) -> Path:
        return self.steam_root / "steamapps" / "workshop" / "content" / str(app_id) / str(item_id)

    def login_command(self) -> List[str]:
        return [str(self.executable), "+login", "anonymous", "+quit"]

    def download_command(self, app_id: str, item_id: str) -> List[str]:
        return [
            str(self.executable),
            "+force_install_dir",
            str(self.steam_root),
            "+login",
            "anonymous",
            "+workshop_download_item",
            str(app_id),
            str(item_id),
            "+quit",
        ]

    def run(self, cmd: Sequence[str], timeout: float | None = None) -> ProcessResult:
        return self.runner(cmd, self.steamcmd_dir, timeout)

    def download_item(self, app_id: str, item_id: str) -> ProcessResult:
        return self.run(self.download_command(app_id, item_id), self.timeout)

    def diagnostics(self, item_id: str) -> str | None:
        """Summarize what SteamCMD's own logs say about ``item_id``."""
        wid = str(item_id)
        lines: List[str] = []
        for log_dir in (self.steamcmd_dir / "logs", Path.home() / "Steam" / "logs"):
            lines = _read_tail_lines(log_dir / "workshop_log.txt")
            if lines:
                break
        if not lines:
            return None
        req_indexes = [
            idx for idx, line in enumerate(lines) if f"Download item {wid} requested" in line
        ]
        window = lines[req_indexes[-1]:] if req_indexes else lines[-160:]
        details = [
            line
            for line in window
            if f"Download item {wid} result :" in line or "Update canceled:" in line
        ]
        if not details:
            return None
        return " | ".join(details[:2])


def _platform_key(platform: str) -> str:
    if platform.startswith("win"):
        return "win32"
    if platform == "darwin":
        return "darwin"
    return "linux"


def ensure_steamcmd(
    steamcmd: SteamCmd,
    client: SteamClient,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """Download and unpack SteamCMD when its executable is missing."""
    if steamcmd.is_installed():
        return steamcmd.executable
    ensure_dir(steamcmd.steamcmd_dir)
    archive_path = steamcmd.steamcmd_dir / steamcmd.installer_url.rsplit("/", 1)[-1]
    for attempt in range(1, INSTALL_ATTEMPTS + 1):
        logging.info("Installing SteamCMD (attempt %s/%s)", attempt, INSTALL_ATTEMPTS)
        try:
            client.download_file(steamcmd.installer_url, archive_path)
            logging.info("Unpacking %s", archive_path.name)
            shutil.unpack_archive(str(archive_path), str(steamcmd.steamcmd_dir))
        except (NetworkError, OSError, shutil.ReadError) as exc:
            logging.warning("SteamCMD install attempt %s failed: %s", attempt, exc)
        finally:
            if archive_path.exists():
                archive_path.unlink()
        if steamcmd.is_installed():
            logging.info("SteamCMD installed at %s", steamcmd.executable)
            return steamcmd.executable
        if attempt < INSTALL_ATTEMPTS:
            sleep(INSTALL_BACKOFF_SECONDS * attempt)
    raise SteamCmdError(f"Could not install SteamCMD into {steamcmd.steamcmd_dir}")


def initialize_steamcmd(steamcmd: SteamCmd) -> None:
    """Run an anonymous login once so SteamCMD can finish self-updating."""
    logging.info("Initializing SteamCMD...")
    result = steamcmd.run(steamcmd.login_command())
    if result.exit_code == SELF_UPDATE_EXIT_CODE:
        logging.info("SteamCMD updated itself, logging in again")
        result = steamcmd.run(steamcmd.login_command())
    if not result.ok:
        reason = extract_steamcmd_error(result.output) or f"exit code {result.exit_code}"
        raise SteamCmdError(
            f"SteamCMD initialization failed: {reason}\n{tail(strip_ansi(result.output), 2000)}"
        )
