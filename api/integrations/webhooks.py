"""
In-process webhook delivery queue.

One worker task drains an asyncio queue and POSTs
{"event", "data", "timestamp"} to the integration's `webhook_url`. A failed
attempt is re-queued after `min(5 min * 2**attempts, 1 h)` until 3 attempts
have been made. Queued jobs are kept in memory only and are lost on restart.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from core import crypto
from core.config import env_float

from . import credentials, repository

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_RETRY_DELAY_S = 5 * 60
MAX_RETRY_DELAY_S = 60 * 60

WEBHOOK_DELIVERED = "WEBHOOK_DELIVERED"
WEBHOOK_FAILED = "WEBHOOK_FAILED"


class WebhookError(RuntimeError):
    pass


def webhook_timeout_s() -> float:
    return env_float("WEBHOOK_TIMEOUT_S", 10.0)


def retry_delay_s(attempts: int) -> float:
    return float(min(BASE_RETRY_DELAY_S * 2**attempts, MAX_RETRY_DELAY_S))


@dataclass
class WebhookJob:
    integration_id: int
    event_type: str
    payload: dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempts: int = 0
    last_error: str | None = None


async def record_event(integration_id: int, event_type: str, metadata: dict[str, Any]) -> None:
    try:
        await repository.insert_event(integration_id, event_type, metadata)
    except Exception:
        logger.exception("integration_event_log_failed integration_id=%s event_type=%s", integration_id, event_type)


class WebhookQueue:
    def __init__(
        self,
        *,
        retry_delay: Callable[[int], float] = retry_delay_s,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._retry_delay = retry_delay
        self._transport = transport
        self._queue: asyncio.Queue[WebhookJob | None] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._retries: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def size(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self.running:
            return None
        self._worker = asyncio.create_task(self._worker_loop(), name="webhook-worker")

    async def stop(self) -> None:
        for task in list(self._retries):
            task.cancel()
        self._retries.clear()
        if self._worker is None:
            return None
        await self._queue.put(None)
        await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None

    def enqueue(self, integration_id: int, event_type: str, payload: dict[str, Any]) -> WebhookJob:
        job = WebhookJob(integration_id=integration_id, event_type=event_type, payload=payload)
        self._queue.put_nowait(job)
        logger.info("webhook_queued job_id=%s integration_id=%s event=%s", job.id, integration_id, event_type)
        return job

    async def _requeue_after(self, job: WebhookJob, delay: float) -> None:
        await asyncio.sleep(delay)
        self._queue.put_nowait(job)

    def _schedule_retry(self, job: WebhookJob) -> None:
        delay = self._retry_delay(job.attempts)
        task = asyncio.create_task(self._requeue_after(job, delay), name=f"webhook-retry-{job.id}")
        self._retries.add(task)
        task.add_done_callback(self._retries.discard)
        logger.info("webhook_retry_scheduled job_id=%s attempts=%s delay_s=%s", job.id, job.attempts, delay)

    async def _worker_loop(self) -> None:
        logger.info("webhook_worker_started")
        try:
            while True:
                job = await self._queue.get()
                if job is None:
                    self._queue.task_done()
                    break
                try:
                    await self.process(job)
                except Exception:
                    logger.exception("webhook_job_crashed job_id=%s", job.id)
                finally:
                    self._queue.task_done()
        finally:
            logger.info("webhook_worker_stopped")

    async def _post(self, job: WebhookJob) -> int:
        integration = await repository.get_integration(job.integration_id)
        if integration is None:
            raise WebhookError("Integration not found.")
        if not integration["is_active"]:
            raise WebhookError("Integration is inactive.")
        url = credentials.decrypt_config(integration["config"] or {}).get("webhook_url")
        if not url:
            raise WebhookError("Integration has no webhook_url configured.")

        body = {
            "event": job.event_type,
            "data": job.payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        async with httpx.AsyncClient(timeout=webhook_timeout_s(), transport=self._transport) as client:
            resp = await client.post(str(url), json=body, headers={"X-Webhook-Event": job.event_type})
        if not resp.is_success:
            raise WebhookError(f"Webhook endpoint returned {resp.status_code}.")
        return resp.status_code

    async def process(self, job: WebhookJob) -> bool:
        """
        Make one delivery attempt. Returns True when the endpoint accepted the event.
        """
        job.attempts += 1
        try:
            status_code = await self._post(job)
        except (WebhookError, httpx.HTTPError, crypto.SecretsError) as exc:
            job.last_error = str(exc) or exc.__class__.__name__
            logger.warning(
                "webhook_attempt_failed job_id=%s integration_id=%s attempts=%s error=%s",
                job.id,
                job.integration_id,
                job.attempts,
                job.last_error,
            )
            if job.attempts < MAX_ATTEMPTS:
                self._schedule_retry(job)
            else:
                await record_event(
                    job.integration_id,
                    WEBHOOK_FAILED,
                    {"job_id": job.id, "event_type": job.event_type, "error": job.last_error, "attempts": job.attempts},
                )
            return False

        logger.info(
            "webhook_delivered job_id=%s integration_id=%s attempts=%s status=%s",
            job.id,
            job.integration_id,
            job.attempts,
            status_code,
        )
        await record_event(
            job.integration_id,
            WEBHOOK_DELIVERED,
            {"job_id": job.id, "event_type": job.event_type, "status": status_code, "attempts": job.attempts},
        )
        return True


webhook_queue = WebhookQueue()
