"""Unit tests for IdentifierGenerator."""

import re

import pytest

from csi_sanity.naming import IdentifierGenerator, run_suffix

pytestmark = [pytest.mark.harness_unit]


class TestIdentifierGenerator:
    """Tests for generated resource names."""

    def test_name_format(self):
        """Names are <prefix>-<suffix>-<counter>."""
        names = IdentifierGenerator(suffix="ABCD1234")
        assert names.next("sanity-node-full") == "sanity-node-full-ABCD1234-0001"

    def test_names_are_unique_within_a_run(self):
        names = IdentifierGenerator()
        generated = [names.next("sanity") for _ in range(200)]
        assert len(set(generated)) == 200

    def test_counter_is_shared_across_prefixes(self):
        names = IdentifierGenerator(suffix="X")
        assert names.next("a") == "a-X-0001"
        assert names.next("b") == "b-X-0002"

    def test_prefix_is_kept_verbatim(self):
        names = IdentifierGenerator()
        assert names.next("sanity-node-stage-nocaps").startswith("sanity-node-stage-nocaps-")

    def test_runs_get_different_suffixes(self):
        assert IdentifierGenerator().suffix != IdentifierGenerator().suffix

    def test_run_suffix_shape(self):
        assert re.fullmatch(r"[0-9A-F]{8}", run_suffix())
