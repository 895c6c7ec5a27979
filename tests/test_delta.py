from tagnormalizer.delta import build_delta
from tagnormalizer.matcher import MatchResult, match_tags
from tagnormalizer.models import TagSnapshot


def test_remove_set_is_match_verbatim_and_add_set_is_normalized():
    match = MatchResult({"ENV": "prod"}, {"environment": "prod"})
    delta = build_delta({"ENV": "prod", "Team": "x"}, match)
    assert delta.to_remove == {"ENV": "prod"}
    assert delta.to_add == {"environment": "prod"}
    assert not delta.is_empty


def test_existing_exact_key_is_not_re_added():
    match = MatchResult({"env": "stage"}, {"environment": "stage"})
    delta = build_delta({"environment": "prod", "env": "stage"}, match)
    assert delta.to_remove == {"env": "stage"}
    assert delta.to_add == {}
    assert delta.is_empty


def test_add_check_is_case_sensitive_against_original():
    match = MatchResult({"Environment": "dev"}, {"environment": "dev"})
    delta = build_delta({"Environment": "dev"}, match)
    assert delta.to_add == {"environment": "dev"}


def test_no_match_gives_empty_delta(env_rules):
    tags = {"Team": "x"}
    delta = build_delta(tags, match_tags(TagSnapshot("r1", tags), env_rules))
    assert delta.to_remove == {}
    assert delta.to_add == {}
    assert delta.is_empty


def test_already_normalized_resource_gives_empty_delta(env_rules):
    tags = {"environment": "prod"}
    delta = build_delta(tags, match_tags(TagSnapshot("r1", tags), env_rules))
    assert delta.is_empty
    assert delta.to_remove == {}
