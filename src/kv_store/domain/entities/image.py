"""In-memory image of a whole database file.

A DatabaseImage is what a transaction works on: every bucket with every
entry. The file adapter persists it as one contiguous blob.

Binary Format (all integers big-endian):
    bucket_count (4)
    per bucket, sorted by name:
        name_len (4) + name
        entry_count (4)
        per entry, sorted by key:
            key_len (4) + key + value_len (4) + value
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

LENGTH_FORMAT = ">I"
LENGTH_SIZE = struct.calcsize(LENGTH_FORMAT)


@dataclass
class DatabaseImage:
    """All buckets of one database, keyed by raw bucket name."""

    buckets: dict[bytes, dict[bytes, bytes]] = field(default_factory=dict)

    def copy(self) -> DatabaseImage:
        """Return a copy whose buckets can be mutated independently."""
        return DatabaseImage({name: dict(entries) for name, entries in self.buckets.items()})

    def entry_count(self) -> int:
        """Total number of entries across all buckets."""
        return sum(len(entries) for entries in self.buckets.values())

    def to_bytes(self) -> bytes:
        """Serialize to the binary format described in the module docstring."""
        parts: list[bytes] = [struct.pack(LENGTH_FORMAT, len(self.buckets))]
        for name in sorted(self.buckets):
            entries = self.buckets[name]
            parts.append(struct.pack(LENGTH_FORMAT, len(name)))
            parts.append(name)
            parts.append(struct.pack(LENGTH_FORMAT, len(entries)))
            for key in sorted(entries):
                value = entries[key]
                parts.append(struct.pack(LENGTH_FORMAT, len(key)))
                parts.append(key)
                parts.append(struct.pack(LENGTH_FORMAT, len(value)))
                parts.append(value)
        return b"".join(parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> DatabaseImage:
        """Deserialize an image.

        Raises:
            ValueError: If the data is truncated or has trailing bytes.
        """
        view = memoryview(data)
        offset = 0

        def read_length() -> int:
            nonlocal offset
            if offset + LENGTH_SIZE > len(view):
                raise ValueError(f"Truncated image at offset {offset}")
            (length,) = struct.unpack_from(LENGTH_FORMAT, view, offset)
            offset += LENGTH_SIZE
            return length

        def read_bytes() -> bytes:
            nonlocal offset
            length = read_length()
            if offset + length > len(view):
                raise ValueError(f"Truncated image at offset {offset}")
            chunk = bytes(view[offset:offset + length])
            offset += length
            return chunk

        buckets: dict[bytes, dict[bytes, bytes]] = {}
        for _ in range(read_length()):
            name = read_bytes()
            entries: dict[bytes, bytes] = {}
            for _ in range(read_length()):
                key = read_bytes()
                entries[key] = read_bytes()
            buckets[name] = entries

        if offset != len(view):
            raise ValueError(f"Trailing {len(view) - offset} bytes after image")

        return cls(buckets)
