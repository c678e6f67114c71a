"""Unit tests for result records and configuration."""

import ipaddress

import pytest

from cdnspeed.models import IPResult, ScanConfig


def _result(addr="1.1.1.1", sent=4, received=4, total=40.0, **kwargs):
    return IPResult(ipaddress.ip_address(addr), sent, received, total, **kwargs)


class TestIPResult:
    """Test derived statistics on IPResult."""

    @pytest.mark.parametrize("sent,received", [(4, 4), (4, 3), (4, 1), (10, 0), (1, 1)])
    def test_loss_rate(self, sent, received):
        r = _result(sent=sent, received=received)
        assert 0.0 <= r.loss_rate <= 1.0
        assert r.loss_rate == (sent - received) / sent

    def test_loss_rate_cached(self):
        r = _result(sent=4, received=2)
        assert r.loss_rate == 0.5
        r.received = 4
        assert r.loss_rate == 0.5

    def test_zero_sent_has_no_loss(self):
        assert _result(sent=0, received=0).loss_rate == 0.0

    def test_mean_delay(self):
        assert _result(received=4, total=100.0).delay_ms == 25.0

    def test_mean_delay_undefined_without_success(self):
        assert _result(received=0, total=0.0).delay_ms is None

    def test_to_row_ipv4(self):
        r = _result(sent=4, received=3, total=30.0, colo="SJC", download_speed=5 * 1024 * 1024)
        assert r.to_row() == ["1.1.1.1", "4", "3", "0.25", "10.00", "5.00", "SJC"]

    def test_to_row_ipv6_bracketed(self):
        r = _result(addr="2606:4700::1", total=12.345)
        row = r.to_row()
        assert row[0] == "[2606:4700::1]"
        assert row[4] == "3.09"
        assert row[5] == "0.00"
        assert row[6] == ""


class TestScanConfig:
    """Test configuration normalization."""

    def test_is_immutable(self):
        config = ScanConfig()
        with pytest.raises(AttributeError):
            config.routines = 5

    def test_routines_clamped(self):
        assert ScanConfig(routines=5000).effective_routines == 1000
        assert ScanConfig(routines=0).effective_routines == 200
        assert ScanConfig(routines=50).effective_routines == 50

    def test_invalid_port_falls_back(self):
        assert ScanConfig(port=0).effective_port == 443
        assert ScanConfig(port=70000).effective_port == 443
        assert ScanConfig(port=8443).effective_port == 8443

    def test_default_accepted_codes(self):
        assert ScanConfig().accepted_codes == (200, 301, 302)
        assert ScanConfig(httping_codes=(204,)).accepted_codes == (204,)
        assert ScanConfig(httping_codes=(42,)).accepted_codes == (200, 301, 302)

    def test_min_speed_bytes(self):
        assert ScanConfig(min_speed=2.0).min_speed_bytes == 2 * 1024 * 1024
