"""Tests for request validation helpers."""

import pytest

from app.errors.exceptions import ValidationError
from app.services.validators import validate_blocked_patterns, validate_url, validate_urls


class TestValidateUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com",
            "http://example.com/path?q=1",
            "https://sub.example.co.uk:8443/",
            "http://localhost:3000",
            "http://10.0.0.1/",
            "http://[::1]:8080/",
            "https://[2001:db8::1]/",
            "https://example.xn--p1ai/",
            "https://b\u00fccher.de/",
            "http://intranet/",
            "https://example",
            "https://my-site.example.com./",
        ],
    )
    def test_valid(self, url):
        assert validate_url(url) == url

    def test_strips_whitespace(self):
        assert validate_url("  https://example.com ") == "https://example.com"

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "example.com",
            "ftp://example.com",
            "https://",
            "https://exa mple.com",
            "https://example.com:99999",
            "https://example.com:abc",
            "https://exa_mple.com",
            "https://-bad-.example.com",
            "https://a..b.com",
            "http://999.1.1.1/",
            "http://[::1/",
        ],
    )
    def test_invalid(self, url):
        with pytest.raises(ValidationError):
            validate_url(url)


class TestBatchValidation:
    def test_urls_keep_order(self):
        urls = ["https://b.com", "https://a.com"]
        assert validate_urls(urls) == urls

    def test_empty_batch(self):
        with pytest.raises(ValidationError):
            validate_urls([])

    def test_blocked_patterns(self):
        assert validate_blocked_patterns([" ads.js ", "*.gif"]) == ["ads.js", "*.gif"]

    def test_blank_pattern(self):
        with pytest.raises(ValidationError):
            validate_blocked_patterns(["ads.js", "  "])
