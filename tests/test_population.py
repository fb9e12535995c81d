import io
import struct

import numpy as np

import pytest

from evoplanets.errors import (
    BadMagicError,
    ChecksumMismatchError,
    PopulationFileError,
    SizeMismatchError,
    TruncatedPayloadError,
)
from evoplanets.io.population import MAGIC, PlanetsPopulation, fnv1a32, load_population, save_population
from evoplanets.planet import Planet


def _population():
    rng = np.random.default_rng(2)
    planets = [Planet.sphere(9, 6, r) for r in (1.0, 1.5, 2.0)]
    planets[1].mutate(0.2, 0.4, 0.1, rng)
    return PlanetsPopulation(planets, 6, 9, 1.5)


def _reheader(payload):
    return struct.pack('<4sQI', MAGIC, len(payload), fnv1a32(payload)) + payload


def test_fnv1a_reference_values():
    assert fnv1a32(b'') == 0x811C9DC5
    assert fnv1a32(b'a') == 0xE40C292C
    assert fnv1a32(b'foobar') == 0xBF9CF968


def test_header_layout():
    data = _population().to_bytes()
    magic, length, checksum = struct.unpack_from('<4sQI', data)
    assert magic == b'POPU'
    assert length == len(data) - 16
    assert checksum == fnv1a32(data[16:])
    count, meridians, parallels, radius = struct.unpack_from('<IIId', data, 16)
    assert (count, meridians, parallels, radius) == (3, 6, 9, 1.5)


def test_round_trip(tmp_path):
    population = _population()
    path = tmp_path / 'planets.pop'
    population.save(path)
    loaded = PlanetsPopulation.load(path)
    assert len(loaded) == 3
    assert (loaded.meridian_count, loaded.parallel_count, loaded.radius) == (6, 9, 1.5)
    for before, after in zip(population.planets, loaded.planets):
        assert np.array_equal(before.grid, after.grid)
        assert (after.degree_u, after.degree_v) == (3, 3)
        assert after.is_periodic()


def test_stream_round_trip():
    buffer = io.BytesIO()
    planets = _population().planets
    save_population(planets, buffer, 2.0)
    buffer.seek(0)
    loaded = load_population(buffer)
    assert loaded.radius == 2.0
    assert loaded.parallel_count == 9
    assert loaded.meridian_count == 6


def test_empty_population():
    loaded = PlanetsPopulation.from_bytes(PlanetsPopulation([], 4, 7, 1.0).to_bytes())
    assert len(loaded) == 0


def test_flipped_payload_byte_fails_checksum(tmp_path):
    data = bytearray(_population().to_bytes())
    data[40] ^= 0xFF
    path = tmp_path / 'corrupt.pop'
    path.write_bytes(bytes(data))
    with pytest.raises(ChecksumMismatchError) as info:
        PlanetsPopulation.load(path)
    assert info.value.path == str(path)


def test_bad_magic():
    data = bytearray(_population().to_bytes())
    data[:4] = b'NOPE'
    with pytest.raises(BadMagicError):
        PlanetsPopulation.from_bytes(bytes(data))


def test_size_mismatch():
    data = _population().to_bytes()
    with pytest.raises(SizeMismatchError):
        PlanetsPopulation.from_bytes(data[:-8])
    with pytest.raises(SizeMismatchError):
        PlanetsPopulation.from_bytes(data + b'\x00')
    with pytest.raises(SizeMismatchError):
        PlanetsPopulation.from_bytes(data[:10])


def test_truncated_payload_with_valid_header():
    payload = _population().to_bytes()[16:]
    with pytest.raises(TruncatedPayloadError):
        PlanetsPopulation.from_bytes(_reheader(payload[:-24]))


def test_trailing_payload_bytes():
    payload = _population().to_bytes()[16:]
    with pytest.raises(PopulationFileError):
        PlanetsPopulation.from_bytes(_reheader(payload + b'\x00' * 8))


def test_errors_are_os_errors():
    assert issubclass(ChecksumMismatchError, OSError)
    assert issubclass(BadMagicError, PopulationFileError)
