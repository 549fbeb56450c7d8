import time
from contextlib import contextmanager

from loguru import logger

from app.utils.metrics import record_stage


@contextmanager
def stage_timer(stage: str):
    """Yield an elapsed-ms getter; the stage latency is logged and recorded on exit."""
    t0 = time.perf_counter()
    elapsed = lambda: int((time.perf_counter() - t0) * 1000)
    try:
        yield elapsed
    finally:
        ms = elapsed()
        record_stage(stage, ms)
        logger.debug(f"[timing] {stage} took {ms}ms")
