"""Host values with a lazily filled device copy.

A CachedParameter is the single owner of a tensor that lives on the host
and may also be needed on an accelerator. The device copy is derived from
the host value on first use and dropped on every write, so it can never go
stale.
"""
from __future__ import annotations

import torch
from torch import Tensor


class CachedParameter:
    """Host value plus an optional device cache.

    `device=None` means host only. Writing a new value always clears the
    cache; `device_value()` repopulates it on demand.
    """

    def __init__(self, value: Tensor | None = None, *, device: str | torch.device | None = None) -> None:
        self.device = torch.device(device) if device is not None else None
        self._host_value: Tensor | None = None
        self._cache: Tensor | None = None
        if value is not None:
            self.set_value(value)

    @property
    def host_value(self) -> Tensor | None:
        return self._host_value

    @property
    def is_cached(self) -> bool:
        """True when a device copy currently exists."""
        return self._cache is not None

    def set_value(self, value: Tensor | None) -> None:
        """Store a detached host copy of `value` and invalidate the cache."""
        self._host_value = None if value is None else value.detach().to("cpu")
        self._cache = None

    def device_value(self) -> Tensor | None:
        """Return the device copy, creating it from the host value if needed."""
        if self._host_value is None:
            return None
        if self.device is None:
            return self._host_value
        if self._cache is None:
            self._cache = self._host_value.to(self.device)
        return self._cache

    def clear_cache(self) -> None:
        """Drop the device copy; the host value is untouched."""
        self._cache = None

    def move_to(self, device: str | torch.device | None) -> None:
        """Change the target device, dropping any existing cache."""
        self.device = torch.device(device) if device is not None else None
        self._cache = None

    @property
    def value(self) -> Tensor | None:
        """The value where computation happens: device copy or host value."""
        if self.device is None:
            return self._host_value
        return self.device_value()

    @value.setter
    def value(self, value: Tensor | None) -> None:
        self.set_value(value)

    def __repr__(self) -> str:
        shape = None if self._host_value is None else tuple(self._host_value.shape)
        return f"CachedParameter(shape={shape}, device={self.device}, cached={self.is_cached})"
