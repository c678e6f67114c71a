"""Unit tests for candidate sampling."""

import ipaddress
import random

import pytest

from cdnspeed.models import ScanConfig
from cdnspeed.sampler import (
    RangeSpecError,
    apply_ceiling,
    build_candidates,
    parse_quota,
    parse_range,
    read_range_lines,
    sample,
)


class TestParseRange:
    """Test range specification parsing."""

    def test_single_ipv4(self):
        spec = parse_range("203.0.113.5")
        assert spec.single
        assert spec.version == 4
        assert spec.size == 1

    def test_single_ipv6(self):
        spec = parse_range("2606:4700::1")
        assert spec.single
        assert spec.version == 6

    def test_prefix_with_host_bits(self):
        """Host bits are ignored rather than rejected."""
        spec = parse_range("10.0.0.7/24")
        assert str(spec.network) == "10.0.0.0/24"
        assert not spec.single

    def test_full_length_prefix_is_single(self):
        assert parse_range("1.1.1.1/32").single

    def test_whitespace_is_trimmed(self):
        assert str(parse_range("  1.0.0.0/24 \n").network) == "1.0.0.0/24"

    @pytest.mark.parametrize("text", ["", "not-an-ip", "1.2.3.4/33", "300.1.1.1", "1.2.3.0/x"])
    def test_invalid_ranges_raise(self, text):
        with pytest.raises(RangeSpecError):
            parse_range(text)


class TestParseQuota:
    """Test 2^n +/- m quota parsing."""

    def test_empty_means_no_quota(self):
        assert parse_quota("", 4) is None
        assert parse_quota("   ", 6) is None

    def test_bare_exponent(self):
        assert parse_quota("8", 4) == 256

    def test_plus_offset(self):
        assert parse_quota("0+12", 4) == 13

    def test_minus_offset(self):
        assert parse_quota("18-6", 6) == 2 ** 18 - 6

    def test_exponent_capped_per_family(self):
        assert parse_quota("30", 4) == 2 ** 16
        assert parse_quota("30", 6) == 2 ** 18

    def test_never_negative(self):
        assert parse_quota("2-100", 4) == 0

    @pytest.mark.parametrize("text", ["abc", "1.5", "+3", "3+", "2^4"])
    def test_invalid_quota_raises(self, text):
        with pytest.raises(RangeSpecError):
            parse_quota(text, 4)


class TestSampleIPv4:
    """Test IPv4 sampling policies."""

    def test_single_host_yields_itself(self):
        result = sample(parse_range("203.0.113.5"))
        assert result == [ipaddress.ip_address("203.0.113.5")]

    @pytest.mark.parametrize("seed", [0, 1, 42, 1234])
    @pytest.mark.parametrize("quota", [1, 13, 100, 255, 256])
    def test_quota_within_block(self, seed, quota):
        """A /24 with quota Q returns Q distinct in-block addresses."""
        spec = parse_range("198.51.100.0/24")
        result = sample(spec, quota, random.Random(seed))
        assert len(result) == quota
        assert len(set(result)) == quota
        assert all(addr in spec.network for addr in result)

    def test_quota_at_least_block_size_enumerates_all(self):
        spec = parse_range("198.51.100.0/24")
        result = sample(spec, 1000, random.Random(7))
        assert sorted(result) == list(spec.network)

    def test_default_one_per_256_block(self):
        spec = parse_range("10.1.0.0/16")
        result = sample(spec, None, random.Random(3))
        assert len(result) == 256
        blocks = {int(addr) >> 8 for addr in result}
        assert len(blocks) == 256
        assert all(addr in spec.network for addr in result)

    def test_default_small_prefix_collapses_to_one(self):
        spec = parse_range("1.1.1.0/30")
        result = sample(spec, None, random.Random(5))
        assert len(result) == 1
        assert result[0] in spec.network

    def test_zero_quota_uses_default_policy(self):
        spec = parse_range("10.2.0.0/23")
        assert len(sample(spec, 0, random.Random(1))) == 2

    def test_test_all(self):
        spec = parse_range("192.0.2.0/28")
        result = sample(spec, None, random.Random(1), test_all=True)
        assert sorted(result) == list(spec.network)

    def test_seed_reproducible(self):
        spec = parse_range("10.0.0.0/20")
        assert sample(spec, 50, random.Random(9)) == sample(spec, 50, random.Random(9))


class TestSampleIPv6:
    """Test IPv6 sampling policies."""

    def test_default_one_address(self):
        spec = parse_range("2606:4700::/32")
        result = sample(spec, None, random.Random(1))
        assert len(result) == 1
        assert result[0] in spec.network

    def test_quota_distinct_and_contained(self):
        spec = parse_range("2606:4700::/32")
        result = sample(spec, 500, random.Random(2))
        assert len(result) == 500
        assert len({str(a) for a in result}) == 500
        assert all(a in spec.network for a in result)

    def test_quota_on_huge_prefix(self):
        """Prefixes larger than sys.maxsize still sample distinct addresses."""
        spec = parse_range("2400::/12")
        result = sample(spec, 64, random.Random(3))
        assert len(set(result)) == 64
        assert all(a in spec.network for a in result)

    def test_quota_clamped_to_prefix_size(self):
        spec = parse_range("2001:db8::/124")
        result = sample(spec, 2 ** 10, random.Random(4))
        assert sorted(result) == list(spec.network)

    def test_test_all_ignored_for_ipv6(self):
        spec = parse_range("2001:db8::/120")
        assert len(sample(spec, None, random.Random(1), test_all=True)) == 1


class TestCeiling:
    """Test the global candidate ceiling."""

    def test_under_limit_unchanged(self):
        addrs = list(ipaddress.ip_network("10.0.0.0/28"))
        assert apply_ceiling(addrs, 100) is addrs

    def test_over_limit_subsampled(self):
        addrs = list(ipaddress.ip_network("10.0.0.0/22"))
        result = apply_ceiling(addrs, 100, random.Random(1))
        assert len(result) == 100
        assert len(set(result)) == 100
        assert set(result) <= set(addrs)

    def test_zero_means_unlimited(self):
        addrs = list(ipaddress.ip_network("10.0.0.0/28"))
        assert apply_ceiling(addrs, 0) == addrs


class TestBuildCandidates:
    """Test loading ranges from inline text and files."""

    def test_inline_text(self):
        config = ScanConfig(ip_text="1.1.1.1, ,10.0.0.0/24,2606:4700::/48", seed=1)
        result = build_candidates(config)
        assert ipaddress.ip_address("1.1.1.1") in result
        assert len(result) == 3

    def test_file_source(self, tmp_path):
        path = tmp_path / "ranges.txt"
        path.write_text("203.0.113.5\n\n  198.51.100.0/24  \n")
        config = ScanConfig(ip_file=str(path), v4_quota="1+1", seed=2)
        result = build_candidates(config)
        assert len(result) == 1 + 3
        assert ipaddress.ip_address("203.0.113.5") in result

    def test_inline_text_wins_over_file(self, tmp_path):
        config = ScanConfig(ip_text="1.1.1.1", ip_file=str(tmp_path / "missing.txt"))
        assert read_range_lines(config) == ["1.1.1.1"]

    def test_missing_file_raises(self, tmp_path):
        config = ScanConfig(ip_file=str(tmp_path / "missing.txt"))
        with pytest.raises(OSError):
            build_candidates(config)

    def test_undecodable_file_raises_range_error(self, tmp_path):
        path = tmp_path / "ranges.txt"
        path.write_bytes(b"1.1.1.1\n\xff\xfe\n")
        with pytest.raises(RangeSpecError, match="not valid UTF-8"):
            read_range_lines(ScanConfig(ip_file=str(path)))

    def test_invalid_entry_aborts(self):
        config = ScanConfig(ip_text="1.1.1.1,bogus")
        with pytest.raises(RangeSpecError):
            build_candidates(config)

    def test_ceiling_applied(self):
        config = ScanConfig(ip_text="10.0.0.0/16", test_all_v4=True, max_candidates=500, seed=3)
        assert len(build_candidates(config)) == 500
