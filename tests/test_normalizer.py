import pytest

from pagegen.errors import MalformedResponse
from pagegen.models import FunnelStage
from pagegen.normalizer import check_contract_hints, normalize_result


def test_page_html_is_copied_verbatim(raw_funnel):
    raw_funnel["pages"]["tofu"] = "<h1>A</h1>"

    result = normalize_result(raw_funnel)

    page = result.pages[FunnelStage.TOFU]
    assert page.stage == FunnelStage.TOFU
    assert page.html_content == "<h1>A</h1>"


def test_ad_creative_passes_through_unchanged(raw_funnel):
    result = normalize_result(raw_funnel)

    assert result.ad_creative.model_dump(by_alias=True) == raw_funnel["adCreative"]


def test_missing_stage_is_malformed(raw_funnel):
    del raw_funnel["pages"]["bofu"]

    with pytest.raises(MalformedResponse):
        normalize_result(raw_funnel)


def test_mistyped_creative_is_malformed(raw_funnel):
    raw_funnel["adCreative"]["mofu"]["adAssets"]["headlines"] = "not a list"

    with pytest.raises(MalformedResponse):
        normalize_result(raw_funnel)


def test_contract_hints_are_reported_not_enforced(raw_funnel):
    headlines = raw_funnel["adCreative"]["bofu"]["adAssets"]["headlines"]
    headlines[0] = "A headline that is clearly longer than thirty characters"
    del headlines[-1]

    result = normalize_result(raw_funnel)

    assert result.ad_creative.bofu.ad_assets.headlines[0].startswith("A headline that")
    assert "bofu headlines: expected 15, got 14" in result.warnings
    assert any(w.startswith("bofu headline #1:") for w in result.warnings)


def test_keyword_range_hint(raw_funnel):
    raw_funnel["adCreative"]["tofu"]["keywords"]["exact"] = ["only one"]

    warnings = check_contract_hints(normalize_result(raw_funnel).ad_creative)

    assert warnings == ["tofu exact keywords: expected 5-10, got 1"]
