"""Tests for wren.server.negotiation — Accept parsing and selection."""

import pytest

from wren.server.negotiation import (
    ANY,
    EXACT,
    TYPE_WILDCARD,
    Accepts,
    NegotiationResult,
    expand_shorthand,
    negotiate,
    parse_accept,
)

JSON = "application/json"
HTML = "text/html"


class TestParseAccept:
    def test_single_range(self) -> None:
        (media_range,) = parse_accept("application/json")
        assert (media_range.type, media_range.subtype) == ("application", "json")
        assert media_range.quality == 1.0
        assert media_range.specificity == EXACT

    def test_quality_and_order(self) -> None:
        ranges = parse_accept("text/html;q=0.5, */*;q=0.1")
        assert [r.quality for r in ranges] == [0.5, 0.1]
        assert [r.position for r in ranges] == [0, 1]
        assert ranges[1].specificity == ANY

    def test_type_wildcard(self) -> None:
        (media_range,) = parse_accept("text/*")
        assert media_range.specificity == TYPE_WILDCARD
        assert media_range.matches("text/plain")
        assert not media_range.matches("application/json")

    def test_lowercases_and_trims(self) -> None:
        (media_range,) = parse_accept("  Application/JSON ; q=0.7 ")
        assert media_range.subtype == "json"
        assert media_range.quality == 0.7

    def test_skips_malformed_units(self) -> None:
        ranges = parse_accept("garbage, , text/html")
        assert len(ranges) == 1
        assert ranges[0].type == "text"

    @pytest.mark.parametrize("q", ["1.5", "-0.2", "abc", "nan", "inf"])
    def test_invalid_quality_is_one(self, q: str) -> None:
        (media_range,) = parse_accept(f"application/json;q={q}")
        assert media_range.quality == 1.0

    def test_matches_ignores_parameters(self) -> None:
        (media_range,) = parse_accept("application/json")
        assert media_range.matches("application/json; charset=utf-8")


class TestNegotiate:
    def test_no_header_gives_default(self) -> None:
        assert negotiate(None, [JSON], JSON) == NegotiationResult(JSON, 1.0, True)

    def test_blank_header_gives_default(self) -> None:
        assert negotiate("   ", [JSON, HTML], HTML) == NegotiationResult(HTML, 1.0, True)

    def test_nothing_supported_gives_default(self) -> None:
        assert negotiate("text/html", [], JSON) == NegotiationResult(JSON, 1.0, True)

    def test_unparseable_header_treated_as_absent(self) -> None:
        assert negotiate("nonsense", [JSON], JSON) == NegotiationResult(JSON, 1.0, True)

    def test_highest_quality_wins(self) -> None:
        result = negotiate("text/html;q=0.9, application/json;q=1.0", [JSON, HTML], JSON)
        assert result.selected == JSON
        assert result.quality == 1.0
        assert result.acceptable

    def test_tie_goes_to_earlier_range(self) -> None:
        result = negotiate("text/html;q=0.8, application/json;q=0.8", [JSON, HTML], JSON)
        assert result.selected == HTML
        assert result.quality == 0.8

    def test_tie_within_range_goes_to_representation_order(self) -> None:
        result = negotiate("*/*", [HTML, JSON], JSON)
        assert result.selected == HTML

    def test_invalid_quality_clamped(self) -> None:
        assert negotiate("application/json;q=1.5", [JSON], JSON).quality == 1.0

    def test_type_wildcard_matches(self) -> None:
        result = negotiate("text/*", [JSON, "text/plain"], JSON)
        assert result.selected == "text/plain"

    def test_nothing_acceptable(self) -> None:
        result = negotiate("image/png", [JSON, HTML], JSON)
        assert result == NegotiationResult(JSON, 0.0, False)

    def test_zero_quality_never_wins(self) -> None:
        result = negotiate("application/json;q=0", [JSON], JSON)
        assert not result.acceptable

    def test_zero_quality_refuses_under_wildcard(self) -> None:
        result = negotiate("application/json;q=0, */*", [JSON, HTML], JSON)
        assert result.selected == HTML
        assert result.acceptable

    def test_more_specific_range_overrides_refusal(self) -> None:
        result = negotiate("text/*;q=0, text/html;q=0.4", [HTML], JSON)
        assert result.selected == HTML
        assert result.quality == 0.4

    def test_pure(self) -> None:
        header = "text/html;q=0.8, application/json;q=0.8"
        first = negotiate(header, [JSON, HTML], JSON)
        for _ in range(5):
            assert negotiate(header, [JSON, HTML], JSON) == first


class TestAccepts:
    def test_shorthands(self) -> None:
        assert expand_shorthand("json") == JSON
        assert expand_shorthand("html") == HTML
        assert expand_shorthand("xml") == "application/xml"
        assert expand_shorthand("text") == "text/plain"
        assert expand_shorthand("yaml") == "application/yaml"
        assert expand_shorthand("image/png") == "image/png"

    def test_best(self) -> None:
        accepts = Accepts("text/html, application/json;q=0.5")
        assert accepts.best("json", "html") == HTML

    def test_best_none_when_unacceptable(self) -> None:
        assert Accepts("image/png").best("json") is None

    def test_boolean_helpers(self) -> None:
        accepts = Accepts("application/json")
        assert accepts.json()
        assert not accepts.html()

    def test_missing_header_accepts_anything(self) -> None:
        assert Accepts(None).html()
