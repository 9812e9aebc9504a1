"""
Contract: Compression Service

Best-effort size reduction of document files before upload. A call may
fail as a whole; callers then proceed with the original files.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from admissions.core.entities.document import DocumentFile


@dataclass
class CompressionResult:
    """Compressed files plus per-file sizes, keyed by file name."""
    files: list[DocumentFile]
    original_sizes: dict[str, int] = field(default_factory=dict)
    compressed_sizes: dict[str, int] = field(default_factory=dict)

    @property
    def total_original(self) -> int:
        return sum(self.original_sizes.values())

    @property
    def total_compressed(self) -> int:
        return sum(self.compressed_sizes.values())

    @property
    def savings_ratio(self) -> float:
        if self.total_original == 0:
            return 0.0
        return 1.0 - self.total_compressed / self.total_original


class CompressionError(Exception):
    """Compression could not be performed."""


class ICompressionService(ABC):
    """Port: Compression Service"""

    @abstractmethod
    async def compress(self, files: list[DocumentFile]) -> CompressionResult:
        """
        Compresses the given files.

        Returns:
            CompressionResult whose ``files`` are in the same order as the
            input; files that could not be reduced are returned unchanged.
        """
        ...
