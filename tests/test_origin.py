import pytest

from formrelay.intake.origin import check_origin, extract_hostname, normalize_allowed_origin


@pytest.mark.parametrize(
    "allowed",
    [["example.com"], ["https://example.com"], [" example.com "], ["http://example.com/contact"]],
)
def test_listed_origin_is_trusted(allowed):
    decision = check_origin("https://example.com", allowed)
    assert decision.trusted
    assert decision.hostname == "example.com"


def test_unlisted_origin_is_rejected_with_hostname():
    decision = check_origin("https://evil.com", ["example.com"])
    assert not decision.trusted
    assert "evil.com" in decision.reason
    assert decision.reason == "Origin not allowed: evil.com"


@pytest.mark.parametrize("origin", ["http://localhost:3000", "http://127.0.0.1:8080"])
def test_dev_hosts_always_trusted(origin):
    assert check_origin(origin, ["example.com"]).trusted


def test_empty_allow_list_trusts_everything():
    assert check_origin("https://anything.net", []).trusted
    assert check_origin(None, []).trusted


@pytest.mark.parametrize("origin", [None, "", "not a url", "null", "example.com"])
def test_missing_or_malformed_origin_rejected(origin):
    decision = check_origin(origin, ["example.com"])
    assert not decision.trusted
    assert decision.reason == "Origin not allowed: unknown"


def test_hostname_matching_ignores_case():
    assert check_origin("https://EXAMPLE.com", ["Example.COM"]).trusted


def test_helpers():
    assert extract_hostname("https://sub.example.com:8443/path") == "sub.example.com"
    assert extract_hostname("   ") is None
    assert normalize_allowed_origin("https://www.example.com/") == "www.example.com"
