"""Tests for the stability classifier."""

import pytest
from pydantic import ValidationError

from usb_tree.classifier import (
    DEFAULT_THRESHOLDS,
    aggregate_host_verdict,
    assess,
    classify,
    count_nodes,
    host_verdict,
    stability_score,
    validate_thresholds,
    verdict_for,
)
from usb_tree.errors import ConfigError
from usb_tree.models import HostPolicy, SourceFormat, StabilityThreshold, Verdict
from usb_tree.parser import parse_topology


def threshold(name="Linux", rec=4, limit=6):
    return StabilityThreshold(platform_name=name, recommended_max_hops=rec, absolute_max_hops=limit)


class TestVerdicts:
    """Tests for per-platform verdict boundaries."""

    @pytest.mark.parametrize("max_hops, expected", [
        (0, Verdict.STABLE),
        (4, Verdict.STABLE),
        (5, Verdict.POTENTIALLY_UNSTABLE),
        (6, Verdict.POTENTIALLY_UNSTABLE),
        (7, Verdict.NOT_STABLE),
        (50, Verdict.NOT_STABLE),
    ])
    def test_boundaries(self, max_hops, expected):
        assert verdict_for(max_hops, threshold(rec=4, limit=6)) == expected

    def test_equal_limits_skip_middle_bucket(self):
        t = threshold(rec=3, limit=3)
        assert verdict_for(3, t) == Verdict.STABLE
        assert verdict_for(4, t) == Verdict.NOT_STABLE

    def test_verdict_values(self):
        assert Verdict.POTENTIALLY_UNSTABLE.value == "POTENTIALLY UNSTABLE"
        assert Verdict.NOT_STABLE.severity > Verdict.POTENTIALLY_UNSTABLE.severity > Verdict.STABLE.severity


class TestScore:
    """Tests for the 1-10 stability score."""

    @pytest.mark.parametrize("max_hops, expected", [
        (0, 9),
        (1, 8),
        (3, 6),
        (8, 1),
        (20, 1),
    ])
    def test_score(self, max_hops, expected):
        assert stability_score(max_hops) == expected


class TestHostVerdict:
    """Tests for host verdict aggregation."""

    def test_potentially_unstable_wins_over_stable(self):
        verdicts = [Verdict.STABLE, Verdict.STABLE, Verdict.POTENTIALLY_UNSTABLE]
        assert aggregate_host_verdict(verdicts) == Verdict.POTENTIALLY_UNSTABLE

    def test_not_stable_wins(self):
        verdicts = [Verdict.STABLE, Verdict.NOT_STABLE, Verdict.POTENTIALLY_UNSTABLE]
        assert aggregate_host_verdict(verdicts) == Verdict.NOT_STABLE

    def test_all_stable(self):
        assert aggregate_host_verdict([Verdict.STABLE] * 3) == Verdict.STABLE

    def test_empty_is_stable(self):
        assert aggregate_host_verdict([]) == Verdict.STABLE

    def test_platform_policy(self):
        per_platform = {
            "Mac Apple Silicon": Verdict.POTENTIALLY_UNSTABLE,
            "iPad USB-C (M-series)": Verdict.NOT_STABLE,
        }
        assert host_verdict(per_platform) == Verdict.NOT_STABLE
        assert host_verdict(per_platform, HostPolicy.PLATFORM, "Mac Apple Silicon") == Verdict.POTENTIALLY_UNSTABLE

    def test_platform_policy_unknown_platform(self):
        with pytest.raises(ConfigError):
            host_verdict({"Linux": Verdict.STABLE}, HostPolicy.PLATFORM, "Amiga")


class TestClassify:
    """Tests for the full classification."""

    def test_default_table_order(self):
        report = classify(3)
        assert list(report.per_platform_verdict) == list(DEFAULT_THRESHOLDS)
        assert len(report.per_platform_verdict) == 8

    def test_three_hops_default_table(self):
        report = classify(3)

        assert report.max_hops == 3
        assert report.tier_count == 4
        assert report.stability_score == 6
        assert report.per_platform_verdict["Windows"] == Verdict.STABLE
        assert report.per_platform_verdict["Mac Apple Silicon"] == Verdict.STABLE
        assert report.per_platform_verdict["iPad USB-C (M-series)"] == Verdict.POTENTIALLY_UNSTABLE
        assert report.host_verdict == Verdict.POTENTIALLY_UNSTABLE

    def test_five_hops_policies_diverge(self):
        strict = classify(5)
        bottleneck = classify(5, policy=HostPolicy.PLATFORM, host_platform="Mac Apple Silicon")

        assert strict.host_verdict == Verdict.NOT_STABLE
        assert bottleneck.host_verdict == Verdict.POTENTIALLY_UNSTABLE
        assert bottleneck.host_policy == HostPolicy.PLATFORM

    def test_single_platform_table(self):
        report = classify(2, {"Linux": threshold()}, device_count=2, hub_count=1)

        assert report.per_platform_verdict == {"Linux": Verdict.STABLE}
        assert report.host_verdict == Verdict.STABLE
        assert report.device_count == 2
        assert report.hub_count == 1

    @pytest.mark.parametrize("max_hops", range(0, 12))
    def test_total(self, max_hops):
        report = classify(max_hops)
        assert report.tier_count == max_hops + 1
        assert all(isinstance(v, Verdict) for v in report.per_platform_verdict.values())


class TestCounting:
    """Tests for hub and device counting."""

    def test_simple_tree_counts(self, simple_tree_text):
        tree = parse_topology(simple_tree_text, SourceFormat.INDENTED_HIERARCHY)
        assert count_nodes(tree) == (2, 1)

    def test_flat_counts(self, lsusb_flat_text):
        tree = parse_topology(lsusb_flat_text, SourceFormat.FLAT_DEVICE_LIST)
        assert count_nodes(tree) == (2, 3)

    def test_assess(self, lsusb_tree_text):
        tree = parse_topology(lsusb_tree_text, SourceFormat.INDENTED_HIERARCHY)
        report = assess(tree)

        assert report.max_hops == 3
        assert report.device_count == 5
        assert report.hub_count == 3


class TestThresholdValidation:
    """Tests for threshold table validation."""

    def test_inverted_threshold_rejected(self):
        with pytest.raises(ValidationError):
            threshold(rec=6, limit=4)

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValidationError):
            threshold(rec=-1, limit=4)

    def test_empty_table(self):
        with pytest.raises(ConfigError):
            validate_thresholds([])

    def test_duplicate_platform(self):
        with pytest.raises(ConfigError):
            validate_thresholds([threshold(), threshold()])

    def test_key_mismatch(self):
        with pytest.raises(ConfigError):
            validate_thresholds({"Windows": threshold("Linux")})

    def test_wrong_entry_type(self):
        with pytest.raises(ConfigError):
            validate_thresholds({"Linux": (4, 6)})

    def test_returns_mapping_in_order(self):
        table = validate_thresholds([threshold("B"), threshold("A")])
        assert list(table) == ["B", "A"]
