"""
Tests for body truncation and GitHub link rewriting.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from updatebot.markdown import (
    MAX_BODY_LENGTH,
    massage_markdown,
    massage_markdown_links,
    smart_truncate,
)

CONFIGURATION = "\n\n</details>\n\n---\n\n### Configuration\n\n📅 **Schedule**: At any time."

body_text_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd"), whitelist_characters=" \n#"),
    max_size=400,
)


def _pr_body(notes_length: int) -> str:
    return (
        "This PR contains the following updates:\n\n"
        "| Package | Change |\n|---|---|\n| lodash | 4.17.20 -> 4.17.21 |\n\n"
        "---\n\n### Release Notes\n\n<details>\n\n"
        + "n" * notes_length
        + CONFIGURATION
    )


@given(text=body_text_strategy, length=st.integers(min_value=1, max_value=300))
@settings(max_examples=100)
def test_property_truncated_within_limit(text: str, length: int) -> None:
    """
    Property: Truncation bound

    For any body and limit, the truncated body SHALL NOT exceed the limit,
    and a body shorter than the limit is returned unchanged.
    """
    result = smart_truncate(text, length)

    assert len(result) <= length
    if len(text) < length:
        assert result == text


@given(notes_length=st.integers(min_value=0, max_value=2000))
@settings(max_examples=100)
def test_property_configuration_section_survives(notes_length: int) -> None:
    """
    Property: Configuration tail is kept

    When release notes push a body over the limit, the notes are shortened
    and the configuration section is kept intact.
    """
    body = _pr_body(notes_length)
    length = 600

    result = smart_truncate(body, length)

    assert len(result) <= length
    assert result.endswith("### Configuration\n\n📅 **Schedule**: At any time.")
    assert result.startswith("This PR contains the following updates:")


def test_large_release_notes_truncated_to_max_length() -> None:
    body = _pr_body(MAX_BODY_LENGTH + 10000)

    result = smart_truncate(body)

    assert len(result) == MAX_BODY_LENGTH
    assert "### Release Notes" in result
    assert result.endswith(CONFIGURATION)


def test_body_without_release_notes_cut_at_limit() -> None:
    body = "x" * (MAX_BODY_LENGTH + 5)

    assert smart_truncate(body) == "x" * MAX_BODY_LENGTH


def test_bare_issue_reference_linked() -> None:
    text = "Fixes https://github.com/lodash/lodash/issues/4874 upstream."

    assert massage_markdown_links(text) == (
        "Fixes [lodash/lodash#4874](https://togithub.com/lodash/lodash/issues/4874) upstream."
    )


def test_reference_with_anchor() -> None:
    text = "See https://github.com/octo/widgets/pull/5#issuecomment-991"

    assert massage_markdown_links(text) == (
        "See [octo/widgets#5](https://togithub.com/octo/widgets/pull/5#issuecomment-991)"
    )


def test_discussion_reference_linked() -> None:
    text = "https://github.com/octo/widgets/discussions/77"

    assert massage_markdown_links(text) == (
        "[octo/widgets#77](https://togithub.com/octo/widgets/discussions/77)"
    )


def test_non_reference_urls_untouched_by_linker() -> None:
    text = "Tag: https://github.com/octo/widgets/releases/tag/v1.2.3"

    assert massage_markdown_links(text) == text


def test_link_targets_rewritten() -> None:
    text = (
        "[#12](https://github.com/octo/widgets/pull/12)\n"
        '<a href="https://github.com/octo/widgets">widgets</a>\n'
        "[changelog]: https://github.com/octo/widgets/blob/main/CHANGELOG.md"
    )

    assert massage_markdown(text) == (
        "[#12](https://togithub.com/octo/widgets/pull/12)\n"
        '<a href="https://togithub.com/octo/widgets">widgets</a>\n'
        "[changelog]: https://togithub.com/octo/widgets/blob/main/CHANGELOG.md"
    )


def test_ghe_bodies_only_truncated() -> None:
    text = "Fixes https://github.com/lodash/lodash/issues/4874 and [x](https://github.com/a/b)"

    assert massage_markdown(text, is_ghe=True) == text


@given(text=body_text_strategy)
@settings(max_examples=100)
def test_property_massage_is_idempotent(text: str) -> None:
    """
    Property: Massaging twice changes nothing more
    """
    text = text + " https://github.com/octo/widgets/issues/1 [a](https://github.com/octo/widgets)"
    once = massage_markdown(text)

    assert massage_markdown(once) == once
