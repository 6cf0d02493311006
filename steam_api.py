from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import requests

from errors import NetworkError
from http_utils import DEFAULT_USER_AGENT, RetryPolicy, describe_request_error
from telemetry import start_span
from utils import ensure_dir


class SteamClient:
    def __init__(self, *, policy: RetryPolicy | None = None, timeout: int = 30) -> None:
        self.policy = policy or RetryPolicy(retries=2, backoff=1.0)
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers["User-Agent"] = DEFAULT_USER_AGENT

    def close(self) -> None:
        self.session.close()

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        endpoint = self._endpoint_key(method, url)
        attempts = self.policy.attempts
        kwargs.setdefault("timeout", self.timeout)
        for attempt in range(1, attempts + 1):
            start = time.monotonic()
            try:
                response = self.session.request(method, url, **kwargs)
            except requests.RequestException as exc:
                logging.warning(
                    "%s failed after %.2fs: %s",
                    endpoint,
                    time.monotonic() - start,
                    describe_request_error(exc),
                )
                if attempt >= attempts:
                    raise NetworkError(
                        f"{endpoint}: {describe_request_error(exc)}"
                    ) from exc
                self._sleep_backoff(attempt, exc)
                continue

            logging.debug(
                "%s -> %s in %.2fs",
                endpoint,
                response.status_code,
                time.monotonic() - start,
            )
            if response.status_code in self.policy.retry_statuses and attempt < attempts:
                response.close()
                self._sleep_backoff(attempt, RuntimeError(f"HTTP {response.status_code}"))
                continue
            if response.status_code >= 400:
                response.close()
                raise NetworkError(f"{endpoint} returned HTTP {response.status_code}")
            return response
        raise NetworkError(f"{endpoint}: no attempts left")

    def fetch_page(self, url: str) -> str:
        with start_span("steam.fetch_page", {"http.url": url}):
            response = self.request("get", url)
            try:
                return response.text
            finally:
                response.close()

    def download_file(self, url: str, dest: Path) -> Path:
        ensure_dir(dest.parent)
        temp_path = dest.with_suffix(f"{dest.suffix}.part")
        with start_span("steam.download_file", {"http.url": url}):
            response = self.request("get", url, stream=True)
            try:
                total = int(response.headers.get("content-length") or 0)
                written = 0
                with temp_path.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        if chunk:
                            handle.write(chunk)
                            written += len(chunk)
                if total and written != total:
                    raise NetworkError(
                        f"Incomplete download of {url}: {written} of {total} bytes"
                    )
                temp_path.replace(dest)
            except requests.RequestException as exc:
                raise NetworkError(f"Download of {url} failed: {exc}") from exc
            finally:
                response.close()
                if temp_path.exists():
                    temp_path.unlink()
        logging.info("Downloaded %s (%s KB)", dest.name, written // 1024)
        return dest

    @staticmethod
    def _endpoint_key(method: str, url: str) -> str:
        parsed = urlparse(url)
        return f"{method.upper()} {parsed.netloc}{parsed.path}"

    def _sleep_backoff(self, attempt: int, exc: Exception) -> None:
        delay = self.policy.delay_for_attempt(attempt)
        if delay <= 0:
            return
        logging.warning(
            "HTTP retry %s/%s after error: %s (sleep %.1fs)",
            attempt,
            self.policy.retries,
            exc,
            delay,
        )
        time.sleep(delay)
