"""On-demand cache revalidation after a publish.

POSTs ``{"paths": [...]}`` with a bearer secret to the front end's
revalidation endpoint.  Failures are logged, counted in the publish
metrics and retried a bounded number of times with a growing delay;
nothing here ever raises into the publish path.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from collections.abc import Callable

from tacklepub.config import RevalidationConfig
from tacklepub.content.models import Document, PageType
from tacklepub.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


def paths_for(doc: Document) -> list[str]:
    """Front-end paths whose cached render depends on ``doc``."""
    match doc.page_type:
        case PageType.BLOG:
            paths = ["/blog", f"/blog/{doc.slug}"]
            if doc.category_slug:
                paths.append(f"/blog/category/{doc.category_slug}")
            return [*paths, "/sitemap.xml", "/sitemap-blog.xml"]
        case PageType.SPECIES:
            return [f"/species/{doc.slug}", "/species", "/sitemap.xml"]
        case PageType.HOW_TO:
            return [f"/how-to/{doc.slug}", "/how-to", "/sitemap.xml"]
        case PageType.LOCATION:
            return [
                f"/locations/{doc.state_slug}/{doc.city_slug}",
                f"/locations/{doc.state_slug}",
                "/locations",
                "/sitemap.xml",
            ]
    return [doc.route_path, "/sitemap.xml"]


class RevalidationClient:
    """Synchronous, bounded-retry client for the revalidation endpoint."""

    def __init__(
        self,
        config: RevalidationConfig,
        metrics: MetricsRecorder | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.metrics = metrics
        self._sleep = sleep

    def _post(self, paths: list[str]) -> dict:
        req = urllib.request.Request(
            self.config.url,
            data=json.dumps({"paths": paths}).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.config.secret}",
                "Content-Type": "application/json",
            },
        )
        with urllib.request.urlopen(req, timeout=self.config.timeout) as resp:
            raw = resp.read().decode("utf-8")
        return json.loads(raw) if raw else {}

    def revalidate(self, paths: list[str]) -> bool:
        """Revalidate ``paths``. Returns True on success, False otherwise."""
        if not self.config.is_configured:
            logger.warning(
                "Revalidation not configured; skipping on-demand revalidation. "
                "Set REVALIDATION_URL and REVALIDATION_SECRET."
            )
            return False

        for attempt in range(self.config.max_retries + 1):
            if attempt:
                delay = self.config.retry_delay * attempt
                logger.info(
                    "Retrying revalidation in %.1fs (attempt %d/%d)",
                    delay,
                    attempt,
                    self.config.max_retries,
                )
                self._sleep(delay)
            logger.info("Revalidating %d path(s): %s", len(paths), ", ".join(paths))
            try:
                result = self._post(paths)
            except (urllib.error.URLError, TimeoutError, OSError, ValueError) as exc:
                logger.warning(
                    "Revalidation failed (non-blocking) for paths [%s]: %s",
                    ", ".join(paths),
                    exc,
                )
                if self.metrics is not None:
                    self.metrics.record_revalidation(paths, error=str(exc), retry_attempt=attempt)
                continue

            logger.info("Revalidation successful: %s", result)
            if self.metrics is not None:
                self.metrics.record_revalidation(paths)
            return True

        logger.error("Revalidation gave up after %d attempts", self.config.max_retries + 1)
        return False

    def revalidate_document(self, doc: Document) -> bool:
        return self.revalidate(paths_for(doc))
