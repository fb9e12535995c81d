"""Binary population snapshots.

Layout (little-endian)::

    header   4s magic b"POPU" | u64 payload length | u32 FNV-1a of payload
    payload  u32 planet count | u32 meridian count | u32 parallel count | f64 radius
             per planet: u32 degree_u | u32 degree_v | u32 rows | u32 columns
                         rows * columns * 3 f64 control coordinates

Grids are stored without their wrapped periodic columns.  A file is fully
checked (magic, size, checksum) before any planet is rebuilt.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np
from loguru import logger

from evoplanets.errors import (
    BadMagicError,
    ChecksumMismatchError,
    EvoPlanetsError,
    PopulationFileError,
    SizeMismatchError,
    TruncatedPayloadError,
)
from evoplanets.planet import Planet

MAGIC = b'POPU'
_HEADER = struct.Struct('<4sQI')
_POPULATION = struct.Struct('<IIId')
_PLANET = struct.Struct('<IIII')

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619


def fnv1a32(data: bytes) -> int:
    """32-bit FNV-1a hash of ``data``."""

    value = FNV_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV_PRIME) & 0xFFFFFFFF
    return value


@dataclass
class PlanetsPopulation:
    """Planets plus the generation parameters needed to continue a run."""

    planets: List[Planet] = field(default_factory=list)
    meridian_count: int = 0
    parallel_count: int = 0
    radius: float = 1.0

    def __len__(self) -> int:
        return len(self.planets)

    def to_bytes(self) -> bytes:
        payload = self._payload()
        return _HEADER.pack(MAGIC, len(payload), fnv1a32(payload)) + payload

    def _payload(self) -> bytes:
        parts = [_POPULATION.pack(len(self.planets), self.meridian_count,
                                  self.parallel_count, float(self.radius))]
        for planet in self.planets:
            grid = planet.control_grid()
            rows, columns = grid.shape[:2]
            parts.append(_PLANET.pack(planet.degree_u, planet.degree_v, rows, columns))
            parts.append(np.ascontiguousarray(grid, dtype='<f8').tobytes())
        return b''.join(parts)

    def save(self, path_or_file) -> None:
        """Write the snapshot to a filesystem path or an open binary stream."""

        data = self.to_bytes()
        if hasattr(path_or_file, 'write'):
            path_or_file.write(data)
            return
        with open(path_or_file, 'wb') as stream:
            stream.write(data)
        logger.info(f"[Population] saved {len(self.planets)} planets to {path_or_file}")

    @classmethod
    def load(cls, path_or_file) -> "PlanetsPopulation":
        if hasattr(path_or_file, 'read'):
            data = path_or_file.read()
            name = getattr(path_or_file, 'name', None)
        else:
            name = os.fspath(path_or_file)
            with open(path_or_file, 'rb') as stream:
                data = stream.read()
        try:
            return cls.from_bytes(data, name)
        except PopulationFileError as exc:
            logger.error(f"[Population] {exc}")
            raise

    @classmethod
    def from_bytes(cls, data: bytes, name=None) -> "PlanetsPopulation":
        if len(data) < _HEADER.size:
            raise SizeMismatchError(
                f'{len(data)} bytes is shorter than the {_HEADER.size}-byte header', name
            )
        magic, length, checksum = _HEADER.unpack_from(data, 0)
        if magic != MAGIC:
            raise BadMagicError(f'bad magic {magic!r}, expected {MAGIC!r}', name)
        if _HEADER.size + length != len(data):
            raise SizeMismatchError(
                f'header declares {length} payload bytes but file holds {len(data) - _HEADER.size}',
                name,
            )
        payload = data[_HEADER.size:]
        actual = fnv1a32(payload)
        if actual != checksum:
            raise ChecksumMismatchError(
                f'checksum mismatch: header {checksum:#010x}, payload {actual:#010x}', name
            )
        return cls._parse(payload, name)

    @classmethod
    def _parse(cls, payload: bytes, name) -> "PlanetsPopulation":
        def take(fmt: struct.Struct, offset: int):
            if offset + fmt.size > len(payload):
                raise TruncatedPayloadError(f'payload ends at byte {len(payload)} inside a record', name)
            return fmt.unpack_from(payload, offset), offset + fmt.size

        (count, meridians, parallels, radius), offset = take(_POPULATION, 0)
        planets: List[Planet] = []
        for index in range(count):
            (degree_u, degree_v, rows, columns), offset = take(_PLANET, offset)
            size = rows * columns * 3 * 8
            if offset + size > len(payload):
                raise TruncatedPayloadError(f'planet {index} grid runs past the payload end', name)
            grid = np.frombuffer(payload, dtype='<f8', count=rows * columns * 3, offset=offset)
            offset += size
            try:
                planets.append(Planet(grid.reshape(rows, columns, 3), degree_u, degree_v))
            except (EvoPlanetsError, ValueError) as exc:
                raise PopulationFileError(f'planet {index}: {exc}', name) from exc
        if offset != len(payload):
            raise PopulationFileError(f'{len(payload) - offset} unexpected bytes after the last planet', name)
        return cls(planets, meridians, parallels, radius)


def save_population(planets: Sequence[Planet], path_or_file, radius: float) -> None:
    """Convenience wrapper deriving the grid counts from the first planet."""

    first = planets[0] if planets else None
    population = PlanetsPopulation(
        list(planets),
        first.meridian_count if first is not None else 0,
        first.parallel_count if first is not None else 0,
        radius,
    )
    population.save(path_or_file)


def load_population(path_or_file) -> PlanetsPopulation:
    return PlanetsPopulation.load(path_or_file)


__all__ = [
    'MAGIC',
    'PlanetsPopulation',
    'fnv1a32',
    'save_population',
    'load_population',
]
