"""Tests for ULID utilities."""

import time

from ulid import ULID

from quickshop.utils.ulid import generate_prefixed_ulid


class TestGeneratePrefixedUlid:
  def test_prefix_and_format(self):
    value = generate_prefixed_ulid("binv")

    prefix, ulid_str = value.split("_", 1)
    assert prefix == "binv"
    assert len(ulid_str) == 26
    assert ULID.from_str(ulid_str) is not None

  def test_uniqueness(self):
    values = [generate_prefixed_ulid("bsub") for _ in range(100)]
    assert len(set(values)) == 100

  def test_time_ordered(self):
    first = generate_prefixed_ulid("baud")
    time.sleep(0.002)
    second = generate_prefixed_ulid("baud")

    assert first < second
