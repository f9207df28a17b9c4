from __future__ import annotations
import random


def calc_next_delay(attempts: int, base_seconds: float = 1.0, max_seconds: float = 60.0) -> float:
    """
    指数退避：1次失败→base，之后翻倍，直到 max_seconds。
    attempts: 已尝试次数（从 1 开始）
    """
    attempts = max(1, attempts)
    delay = base_seconds * (2 ** (attempts - 1))
    return min(max_seconds, delay)


def with_jitter(delay: float, ratio: float = 0.25) -> float:
    """加 0~ratio 的随机抖动，避免多个 worker 同时重试。"""
    return delay + random.uniform(0, ratio * delay)
