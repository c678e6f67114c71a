"""Unit tests for datacenter detection."""

import logging

import httpx
import pytest

from cdnspeed.providers import detect_colo
from cdnspeed.providers.cloudflare import CloudflareProvider
from cdnspeed.providers.cloudfront import CloudFrontProvider
from cdnspeed.providers.fastly import FastlyProvider


def response(**headers):
    return httpx.Response(200, headers={k.replace("_", "-"): v for k, v in headers.items()})


class TestProviders:
    """Test each provider's header parsing."""

    def test_cloudflare_ray(self):
        r = response(cf_ray="7bd32409eda7b020-SJC")
        assert CloudflareProvider().matches(r)
        assert CloudflareProvider().detect_colo(r) == "SJC"

    def test_cloudflare_server_without_ray(self):
        r = response(server="cloudflare")
        assert CloudflareProvider().matches(r)
        assert CloudflareProvider().detect_colo(r) is None

    def test_cloudfront_pop(self):
        r = response(x_amz_cf_pop="NRT57-P2")
        assert CloudFrontProvider().detect_colo(r) == "NRT"

    def test_cloudfront_malformed(self):
        assert CloudFrontProvider().detect_colo(response(x_amz_cf_pop="nrt57")) is None

    def test_fastly_uses_last_node(self):
        r = response(x_served_by="cache-dfw18681-DFW, cache-lhr7380-LHR")
        assert FastlyProvider().detect_colo(r) == "LHR"


class TestRegistry:
    """Test provider lookup."""

    def test_detection_logs_provider_name(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="cdnspeed.providers"):
            detect_colo(httpx.Response(200, headers={"x-amz-cf-pop": "FRA56-C1"}))
        assert "CloudFront edge detected, datacenter FRA" in caplog.text

    @pytest.mark.parametrize(
        "headers,expected",
        [
            ({"cf-ray": "8a1b2c3d4e5f6789-HKG"}, "HKG"),
            ({"x-amz-cf-pop": "FRA56-C1"}, "FRA"),
            ({"x-served-by": "cache-sjc10042-SJC"}, "SJC"),
            ({"server": "nginx"}, None),
            ({}, None),
        ],
    )
    def test_detect(self, headers, expected):
        assert detect_colo(httpx.Response(200, headers=headers)) == expected
