"""Outbound queue for real-time events and notifications.

Request handlers hand work to the worker with ``submit`` and return as soon
as the primary write has committed. Jobs run on a daemon thread; a failing
job is logged and the next one is processed. Pending jobs live only in this
process's memory and are lost if it dies.

An ``inline`` worker runs each job inside ``submit`` instead, for deployments
with the background thread disabled.
"""
import queue
import threading
import logging

logger = logging.getLogger(__name__)


class OutboundJob:
    def __init__(self, name, func, args=(), kwargs=None):
        self.name = name
        self.func = func
        self.args = args
        self.kwargs = kwargs or {}

    def __repr__(self):
        return f"OutboundJob({self.name!r})"


class OutboundWorker:
    def __init__(self, poll_seconds=1, inline=False):
        self.q = queue.Queue()
        self.poll_seconds = poll_seconds
        self.inline = inline
        self.thread = None
        self.running = False

    def start(self):
        if self.running:
            return
        self.running = True
        self.thread = threading.Thread(target=self.run, name='outbound-worker', daemon=True)
        self.thread.start()
        logger.info("[Worker] Outbound worker started")

    def stop(self):
        self.running = False
        if self.thread is not None:
            self.thread.join()
            self.thread = None

    def submit(self, name, func, *args, **kwargs):
        job = OutboundJob(name, func, args, kwargs)
        if self.inline:
            self._invoke(job)
            return
        self.q.put(job)

    def run_inline(self):
        """Stop the thread and run every later job on the submitting thread."""
        self.stop()
        self.inline = True
        self.drain()

    @property
    def pending(self) -> int:
        return self.q.qsize()

    def run(self):
        while self.running:
            try:
                job = self.q.get(timeout=self.poll_seconds)
            except queue.Empty:
                continue
            self._execute(job)

    def drain(self) -> int:
        """Run every queued job on the calling thread. Returns how many ran."""
        processed = 0
        while True:
            try:
                job = self.q.get_nowait()
            except queue.Empty:
                return processed
            self._execute(job)
            processed += 1

    def join(self):
        """Block until every submitted job has been processed by someone."""
        self.q.join()

    def _execute(self, job):
        try:
            self._invoke(job)
        finally:
            self.q.task_done()

    def _invoke(self, job):
        try:
            logger.debug("[Worker] Running %s", job.name)
            job.func(*job.args, **job.kwargs)
        except Exception:
            logger.exception("[Worker] Outbound job %s failed", job.name)


_worker = None


def get_outbound_worker() -> OutboundWorker:
    global _worker
    if _worker is None:
        from config import config
        _worker = OutboundWorker(poll_seconds=config.OUTBOUND_QUEUE_POLL_SECONDS,
                                 inline=not config.OUTBOUND_WORKER_ENABLED)
    return _worker


def start_outbound_worker() -> OutboundWorker:
    """Start the shared worker thread unless it was built to run jobs inline."""
    worker = get_outbound_worker()
    if not worker.inline:
        worker.start()
    return worker


def reset_outbound_worker():
    global _worker
    if _worker is not None and _worker.running:
        _worker.stop()
    _worker = None
