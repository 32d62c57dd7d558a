"""Running byte budget for the attachments of one notice."""

from __future__ import annotations


def format_file_size(size: int) -> str:
    """Return a human-readable size such as ``'2.5 MB'``."""

    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f}".rstrip("0").rstrip(".") + f" {units[index]}"


class SizeBudget:
    """Cumulative staged bytes compared against per-file and per-notice caps."""

    def __init__(self, max_file_bytes: int, max_total_bytes: int, soft_ratio: float = 1.0) -> None:
        self.max_file_bytes = max_file_bytes
        self.max_total_bytes = max_total_bytes
        self.soft_ratio = soft_ratio
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(0, self.max_total_bytes - self.used)

    @property
    def soft_limit_reached(self) -> bool:
        return self.used > self.max_total_bytes * self.soft_ratio

    def fits(self, size: int) -> bool:
        return size <= self.max_file_bytes and self.used + size <= self.max_total_bytes

    def consume(self, size: int) -> None:
        if not self.fits(size):
            raise ValueError(f"{size} bytes do not fit the remaining budget of {self.remaining}")
        self.used += size
