"""Staged recovery from accelerator out-of-memory failures.

A computation that runs out of accelerator memory is retried after each
recovery stage in turn: freeing cached device copies, emptying the torch
allocator cache, and finally moving work back to the host. The last
failure is re-raised once every stage has been tried.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Sequence, TypeVar

import torch

from layerkit.console import logger as console
from layerkit.strategy import Placement

T = TypeVar("T")

logger = logging.getLogger(__name__)

LOW_MEMORY_WARNING = (
    "The accelerator is low on memory; layerkit is freeing cached data and "
    "may fall back to the host, which is slower."
)


def is_out_of_memory(error: BaseException) -> bool:
    """True for accelerator allocation failures."""
    oom_type = getattr(torch.cuda, "OutOfMemoryError", None)
    if oom_type is not None and isinstance(error, oom_type):
        return True
    return isinstance(error, RuntimeError) and "out of memory" in str(error).lower()


def execute_with_staged_recovery(
    compute: Callable[[], T],
    recovery_stages: Sequence[Callable[[], None]],
) -> T:
    """Run `compute`, running one recovery stage after each OOM failure."""
    attempts = len(recovery_stages) + 1
    for attempt in range(attempts):
        try:
            return compute()
        except Exception as e:
            if attempt == attempts - 1 or not is_out_of_memory(e):
                raise
            console.warning_once("low-accelerator-memory", LOW_MEMORY_WARNING)
            logger.debug("out of memory on attempt %d, running recovery stage", attempt + 1)
            recovery_stages[attempt]()
    raise AssertionError("unreachable")


def free_parameter_caches(layers: Iterable[object]) -> Callable[[], None]:
    """Stage that drops every prediction parameter's device copy."""

    def run() -> None:
        for layer in layers:
            for param in getattr(layer, "learnable_parameters", []):
                cache = getattr(param, "cache", None)
                if cache is not None:
                    cache.clear_cache()

    return run


def empty_device_cache() -> None:
    if torch.cuda.is_available():
        torch.cuda.empty_cache()


def fall_back_to_host(layers: Iterable[object]) -> Callable[[], None]:
    """Stage that re-places every layer on the host, keeping its mode."""

    def run() -> None:
        for layer in layers:
            placement: Placement = layer.placement  # type: ignore[attr-defined]
            layer.setup(Placement.host(placement.mode))  # type: ignore[attr-defined]

    return run


def default_recovery_stages(layers: Sequence[object]) -> list[Callable[[], None]]:
    """Free caches, empty the allocator, then move to the host."""
    return [free_parameter_caches(layers), empty_device_cache, fall_back_to_host(layers)]


__all__ = [
    "default_recovery_stages",
    "empty_device_cache",
    "execute_with_staged_recovery",
    "fall_back_to_host",
    "free_parameter_caches",
    "is_out_of_memory",
]
