import logging
import sys
from pathlib import Path
from typing import Callable, List

from config import Config, load_config
from errors import PageFormatError, WorkshopError
from http_utils import RetryPolicy
from orchestrator import DownloadOrchestrator, DownloadSettings
from steam_api import SteamClient
from steamcmd import SteamCmd, ensure_steamcmd, initialize_steamcmd
from telemetry import init_telemetry, shutdown_telemetry, start_span
from workshop_page import classify_page, extract_item_ids, parse_item_id, workshop_item_url

PROMPT = "Enter a workshop item or collection id: "
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def configure_logging(config: Config) -> None:
    level = getattr(logging, str(config.log_level).upper(), logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file, mode="w", encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
        force=True,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def read_identifier(prompt: Callable[[str], str]) -> str:
    try:
        raw = prompt(PROMPT)
    except EOFError:
        raw = ""
    return parse_item_id(raw)


def resolve_items(client: SteamClient, item_id: str) -> tuple[str, List[str]]:
    """Return the app id and the item ids behind ``item_id``."""
    with start_span("workshop.resolve", {"steam.item_id": item_id}) as span:
        html_text = client.fetch_page(workshop_item_url(item_id))
        page = classify_page(html_text)
        span.set_attribute("steam.app_id", page.app_id)
        span.set_attribute("workshop.kind", page.kind.value)
        if not page.is_collection:
            logging.info("Item %s (%s) of app %s", item_id, page.title or "untitled", page.app_id)
            return page.app_id, [item_id]
        item_ids = extract_item_ids(html_text, exclude_id=item_id)
        if not item_ids:
            raise PageFormatError(f"Collection {item_id} lists no items")
        logging.info(
            "Collection %s (%s): %s item(s) for app %s",
            item_id,
            page.title or "untitled",
            len(item_ids),
            page.app_id,
        )
        return page.app_id, item_ids


def run(
    config: Config,
    *,
    prompt: Callable[[str], str] = input,
    client: SteamClient | None = None,
    steamcmd: SteamCmd | None = None,
) -> int:
    client = client or SteamClient(
        policy=RetryPolicy(retries=config.http_retries, backoff=config.http_backoff),
        timeout=config.http_timeout,
    )
    steamcmd = steamcmd or SteamCmd(
        Path(config.steamcmd_dir),
        Path(config.steam_root),
        timeout=config.steamcmd_timeout,
    )
    try:
        ensure_steamcmd(steamcmd, client)
        if not config.skip_steamcmd_init:
            initialize_steamcmd(steamcmd)

        item_id = read_identifier(prompt)
        app_id, item_ids = resolve_items(client, item_id)

        orchestrator = DownloadOrchestrator(
            steamcmd,
            DownloadSettings(
                concurrency=config.concurrency,
                max_retries=config.max_retries,
                retry_delay=config.retry_delay,
                validation_passes=config.validation_passes,
                validation_delay=config.validation_delay,
            ),
        )
        result = orchestrator.run(app_id, item_ids)
    except WorkshopError as exc:
        logging.error("Fatal error: %s", exc)
        return EXIT_FAILURE
    finally:
        client.close()

    if not result.failed:
        logging.info(
            "Done. Content is in %s",
            steamcmd.steam_root / "steamapps" / "workshop" / "content" / app_id,
        )
    return result.exit_code


def main() -> int:
    config = load_config()
    configure_logging(config)
    init_telemetry()
    try:
        return run(config)
    except KeyboardInterrupt:
        logging.warning("Interrupted")
        return EXIT_INTERRUPTED
    finally:
        shutdown_telemetry()


if __name__ == "__main__":
    sys.exit(main())
