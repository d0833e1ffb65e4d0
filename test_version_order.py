"""Tests for version ordering."""

import itertools

import pytest

from sdkdeck.modules.version_order import SemVer, VersionOrder, parse_version_order


def order(raw: str) -> VersionOrder:
    return parse_version_order(raw)


class TestParsing:

    def test_full_semver_is_parsed(self):
        version = order("21.0.1-tem")
        assert version.parsed
        assert version.semver == SemVer(21, 0, 1, "tem")

    def test_minor_and_patch_are_optional(self):
        assert order("17").semver == SemVer(17, 0, 0)
        assert order("3.9").semver == SemVer(3, 9, 0)

    def test_more_than_two_dots_is_never_parsed(self):
        version = order("22.3.r17.1-grl")
        assert not version.parsed
        assert str(version) == "22.3.r17.1-grl"

    @pytest.mark.parametrize("raw", ["latest", "1.2.x", "v1.0.0", ""])
    def test_non_numeric_strings_fall_back_to_text(self, raw):
        assert not order(raw).parsed

    def test_string_form_is_normalized(self):
        assert str(order("17")) == "17.0.0"
        assert str(order("1.2.3-rc1")) == "1.2.3-rc1"

    def test_semver_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            SemVer.parse("not-a-version")


class TestComparison:

    def test_numeric_components_compare_as_numbers(self):
        assert order("1.10.0") > order("1.9.0")
        assert order("2.0.0") < order("10.0.0")

    def test_absent_metadata_sorts_before_present(self):
        assert order("21.0.1") < order("21.0.1-tem")

    def test_metadata_compares_textually(self):
        assert order("1.0.0-rc1") < order("1.0.0-rc2")
        assert order("21.0.1-amzn") < order("21.0.1-tem")

    def test_short_forms_equal_their_full_form(self):
        assert order("1.0") == order("1.0.0")
        assert hash(order("1.0")) == hash(order("1.0.0"))

    def test_mixed_comparison_uses_text_of_both_sides(self):
        parsed, unparsed = order("1.0.0"), order("abc")
        assert unparsed.compare(parsed) == 1
        assert parsed.compare(unparsed) == -1

    def test_mixed_comparison_never_raises(self):
        raws = ["10.0.0", "1a", "9.0.0", "22.3.r17.1-grl", "latest", "17", "1.0.0-rc1"]
        for left, right in itertools.product(raws, repeat=2):
            assert order(left).compare(order(right)) in (-1, 0, 1)

    def test_compare_is_antisymmetric(self):
        raws = ["10.0.0", "1a", "9.0.0", "latest", "17", "1.0.0-rc1"]
        for left, right in itertools.product(raws, repeat=2):
            assert order(left).compare(order(right)) == -order(right).compare(order(left))

    def test_parsed_set_sorts_transitively(self):
        raws = ["11.0.21", "21.0.1-tem", "17.0.9", "21.0.1", "8.0.392", "21"]
        ordered = [str(v) for v in sorted(order(raw) for raw in raws)]
        assert ordered == ["8.0.392", "11.0.21", "17.0.9", "21.0.0", "21.0.1", "21.0.1-tem"]

    def test_unparsed_set_sorts_textually(self):
        raws = ["22.3.r17.1-grl", "22.3.r11.1-grl", "latest", "edge"]
        ordered = [str(v) for v in sorted(order(raw) for raw in raws)]
        assert ordered == ["22.3.r11.1-grl", "22.3.r17.1-grl", "edge", "latest"]

    def test_comparing_with_other_types_is_unsupported(self):
        assert order("1.0.0") != "1.0.0"
        with pytest.raises(TypeError):
            order("1.0.0") < "2.0.0"
