import asyncio
import logging

from .errors import AppError
from .utils.otp import OTPEngine


logger = logging.getLogger("identity.otp")


def run_cleanup_once(engine: OTPEngine) -> tuple[int, int]:
    """Drop expired codes and attempts older than the rate window."""
    otps = attempts = 0
    try:
        otps = engine.cleanup_expired_otps()
    except AppError:
        logger.exception("expired OTP cleanup failed")
    try:
        attempts = engine.cleanup_old_attempts()
    except AppError:
        logger.exception("OTP attempt cleanup failed")
    return otps, attempts


async def cleanup_loop(engine: OTPEngine, interval: float) -> None:
    while True:
        await asyncio.to_thread(run_cleanup_once, engine)
        await asyncio.sleep(interval)
