"""
Timestamps crossing the API boundary are UTC epoch seconds
"""
import time


def epoch_now() -> int:
    """Current UTC time in whole epoch seconds"""
    return int(time.time())


def epoch_now_precise() -> float:
    """Current UTC time in epoch seconds with sub-second precision"""
    return time.time()


def days_ago(days: int) -> int:
    """Epoch seconds for `days` days before now"""
    return epoch_now() - days * 86400
