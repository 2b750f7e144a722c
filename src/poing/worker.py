"""Background generation on a single dedicated thread.

Requests are queued on a one-thread executor, so at most one generation
touches the loaded models at a time. Results and errors come back through
the job's future; progress is pushed to the caller's callback and also
kept on the job.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation flag checked by the decoder loop."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self):
        return self._event.is_set()


class GenerationJob:
    """Handle for one queued generation."""

    def __init__(self, prompt, params, callback=None):
        self.prompt = prompt
        self.params = params
        self.token = CancelToken()
        self.future = None
        self._callback = callback
        self._progress = 0.0
        self._lock = threading.Lock()

    @property
    def progress(self):
        with self._lock:
            return self._progress

    def report(self, value):
        with self._lock:
            # Never move backwards
            if value < self._progress:
                return
            self._progress = value
        if self._callback is not None:
            self._callback(value)

    def cancel(self):
        """Request cancellation; a job still in the queue will not start decoding."""
        self.token.cancel()

    def done(self):
        return self.future.done()

    def result(self, timeout=None):
        """Samples on success; re-raises the generation error otherwise."""
        return self.future.result(timeout=timeout)


class GenerationWorker:
    """Serializes generations against one loaded pipeline."""

    def __init__(self, pipeline):
        self.pipeline = pipeline
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="poing-gen")

    def _run(self, job):
        logger.info(f"Worker picked up job: '{str(job.prompt)[:60]}'")
        try:
            return self.pipeline.generate(job.prompt, job.params,
                                          progress=job.report, cancel=job.token)
        except Exception as e:
            logger.info(f"Job ended with {type(e).__name__}: {e}")
            raise

    def submit(self, prompt, params=None, progress=None):
        """Queue a generation and return its GenerationJob."""
        job = GenerationJob(prompt, params, callback=progress)
        job.future = self._executor.submit(self._run, job)
        return job

    def generate(self, prompt, params=None, progress=None, timeout=None):
        """Submit and block until the samples are ready."""
        return self.submit(prompt, params, progress).result(timeout=timeout)

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
        return False
