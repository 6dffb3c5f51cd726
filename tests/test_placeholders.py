import pytest

from waiver_app.exceptions import ValidationException
from waiver_app.services.placeholders import (
    UnresolvedPolicy,
    find_placeholder_keys,
    is_placeholder_key,
    merge_field_key_error,
    render_preview_html,
    resolve,
)


def test_resolve_uses_org_default():
    result = resolve("<academy_name>", {"academy_name": "Iron Fist Dojo"}, {})
    assert result.resolved_content == "Iron Fist Dojo"
    assert result.unresolved_keys == []


def test_override_beats_default():
    result = resolve(
        "Welcome to <academy_name>.",
        {"academy_name": "Iron Fist Dojo"},
        {"academy_name": "Iron Fist Dojo East"},
    )
    assert result.resolved_content == "Welcome to Iron Fist Dojo East."


def test_every_occurrence_substituted():
    result = resolve("<a_b> and <a_b> again", {"a_b": "X"})
    assert result.resolved_content == "X and X again"


def test_unresolved_kept_and_reported_once_in_order():
    result = resolve("<zeta> <alpha> <zeta>", {})
    assert result.resolved_content == "<zeta> <alpha> <zeta>"
    assert result.unresolved_keys == ["zeta", "alpha"]


def test_blank_policy_removes_unresolved_tokens():
    result = resolve("Hello <missing>!", {}, policy=UnresolvedPolicy.BLANK)
    assert result.resolved_content == "Hello !"
    assert result.unresolved_keys == ["missing"]


def test_error_policy_raises_with_field_error():
    with pytest.raises(ValidationException) as exc:
        resolve("Hello <missing>", {}, policy=UnresolvedPolicy.ERROR)
    assert "missing" in exc.value.errors["content"]


def test_error_policy_passes_when_everything_resolves():
    result = resolve("Hello <name>", {"name": "Sam"}, policy=UnresolvedPolicy.ERROR)
    assert result.resolved_content == "Hello Sam"


def test_substituted_values_are_not_rescanned():
    result = resolve("<first>", {"first": "<second>", "second": "nope"})
    assert result.resolved_content == "<second>"
    assert result.unresolved_keys == []


def test_markup_tags_are_not_placeholders():
    content = "<p>Train at <academy_name></p><br><strong>Note</strong>"
    result = resolve(content, {"academy_name": "Dojo"})
    assert result.resolved_content == "<p>Train at Dojo</p><br><strong>Note</strong>"
    assert result.unresolved_keys == []


def test_find_placeholder_keys_skips_markup():
    assert find_placeholder_keys("<p><academy_name> <owner_name> <academy_name></p>") == [
        "academy_name",
        "owner_name",
    ]


@pytest.mark.parametrize("key", ["a", "academy_name", "x1", "a_1_b", "a" * 50])
def test_valid_keys(key):
    assert merge_field_key_error(key) is None
    assert is_placeholder_key(key)


@pytest.mark.parametrize("key", ["Academy", "1abc", "_abc", "my-key", "my key", "my.key", "", "a" * 51])
def test_invalid_keys(key):
    assert merge_field_key_error(key) is not None


@pytest.mark.parametrize("key", ["p", "br", "hr"])
def test_markup_names_are_reserved(key):
    assert "reserved" in merge_field_key_error(key)
    assert not is_placeholder_key(key)


@pytest.mark.parametrize("key", ["a", "b", "code", "mark", "small", "table", "strong"])
def test_element_names_are_valid_keys(key):
    assert merge_field_key_error(key) is None
    assert is_placeholder_key(key)


def test_closed_element_is_markup_but_bare_token_is_placeholder():
    result = resolve("<strong>Warning</strong> call <code>", {"code": "555-0100", "strong": "X"})
    assert result.resolved_content == "<strong>Warning</strong> call 555-0100"
    assert result.unresolved_keys == []
    assert find_placeholder_keys("<table><code></table>") == ["code"]


def test_policy_from_setting_falls_back_to_keep():
    assert UnresolvedPolicy.from_setting("ERROR") is UnresolvedPolicy.ERROR
    assert UnresolvedPolicy.from_setting("bogus") is UnresolvedPolicy.KEEP
    assert UnresolvedPolicy.from_setting(None) is UnresolvedPolicy.KEEP


def test_preview_escapes_values_and_highlights_unresolved():
    result = render_preview_html(
        "<p><academy_name> welcomes <member_name></p><script>alert(1)</script>",
        {"academy_name": "Tom & Jerry <Dojo>"},
    )
    assert "Tom &amp; Jerry &lt;Dojo&gt;" in result.resolved_content
    assert '<span class="merge-field-unresolved">&lt;member_name&gt;</span>' in result.resolved_content
    assert "<script>" not in result.resolved_content
    assert result.unresolved_keys == ["member_name"]
