from __future__ import annotations

import hashlib
import hmac
import json
import logging

import requests

from .app_logging import log_with_fields
from .config import WebhookConfig
from .models import JobStatus

SIGNATURE_HEADER = "X-Signature"


def build_payload(job: JobStatus, download_url: str) -> dict[str, str | None]:
    return {
        "job_id": job.job_id,
        "order_no": job.order_id,
        "status": "ready",
        "download_url": download_url,
        "finished_at": job.finished_at,
    }


def sign(body: bytes, token: str) -> str:
    return hmac.new(token.encode("utf-8"), body, hashlib.sha256).hexdigest()


class WebhookNotifier:
    def __init__(self, config: WebhookConfig, logger: logging.Logger, session: requests.Session | None = None) -> None:
        self.config = config
        self.logger = logger
        self.session = session

    def download_url(self, job: JobStatus) -> str:
        return self.config.download_url_template.format(
            job_id=job.job_id,
            order_id=job.order_id,
            archive_path=job.archive_path or "",
        )

    def notify(self, job: JobStatus) -> bool:
        """POST the ready notification; delivery problems are logged, never raised."""
        if not job.callback_url:
            return False
        post = self.session.post if self.session is not None else requests.post
        try:
            body = json.dumps(build_payload(job, self.download_url(job)), sort_keys=True).encode("utf-8")
            headers = {"Content-Type": "application/json"}
            if job.callback_token:
                headers[SIGNATURE_HEADER] = sign(body, job.callback_token)
            response = post(job.callback_url, data=body, headers=headers, timeout=self.config.timeout_seconds)
            response.raise_for_status()
        except (requests.RequestException, KeyError, IndexError, ValueError) as exc:
            log_with_fields(
                self.logger,
                logging.WARNING,
                "webhook_failed",
                job_id=job.job_id,
                url=job.callback_url,
                error=str(exc),
            )
            return False
        log_with_fields(
            self.logger,
            logging.INFO,
            "webhook_sent",
            job_id=job.job_id,
            url=job.callback_url,
            status_code=response.status_code,
        )
        return True
