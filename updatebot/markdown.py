"""Markdown post-processing for PR and issue bodies.

GitHub turns bare references to other repositories' issues into
backlinks on those issues. Bodies written by the bot point at github.com
through the togithub.com redirector instead, and are cut down to the size
GitHub accepts.
"""

import re

MAX_BODY_LENGTH = 60000

_CONFIGURATION_DIVIDER = "\n\n</details>\n\n---\n\n### Configuration"

_RELEASE_NOTES_RE = re.compile(
    r"(?P<pre_notes>.*### Release Notes)(?P<release_notes>.*)### Configuration(?P<post_notes>.*)",
    re.DOTALL,
)

# A bare issue/PR/discussion URL: not already a link target or inside a tag
_BARE_REFERENCE_RE = re.compile(
    r"(?<![(\[<\"'=\w/])(?<!\]: )"
    r"https?://github\.com/"
    r"(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+)/"
    r"(?P<kind>issues|pull|discussions)/(?P<number>\d+)"
    r"(?P<suffix>#[\w-]+)?"
    r"(?![\w/])"
)

_LINK_TARGET_REWRITES = [
    (re.compile(r"href=\"https?://github\.com/"), 'href="https://togithub.com/'),
    (re.compile(r"\]\(https://github\.com/"), "](https://togithub.com/"),
    (re.compile(r"\]: https://github\.com/"), "]: https://togithub.com/"),
]


def smart_truncate(text: str, length: int = MAX_BODY_LENGTH) -> str:
    """
    Truncate ``text`` to ``length`` characters.

    When the text has a "### Release Notes" section followed by
    "### Configuration", the release notes are shortened and everything from
    the configuration heading on is kept.
    """
    if len(text) < length:
        return text
    match = _RELEASE_NOTES_RE.match(text)
    if not match:
        return text[:length]
    pre_notes = match.group("pre_notes")
    release_notes = match.group("release_notes")
    post_notes = match.group("post_notes")
    available = length - (len(pre_notes) + len(post_notes) + len(_CONFIGURATION_DIVIDER))
    if available <= 0:
        return text[:length]
    return pre_notes + release_notes[:available] + _CONFIGURATION_DIVIDER + post_notes


def _link_reference(match: re.Match) -> str:
    owner, repo, number = match.group("owner"), match.group("repo"), match.group("number")
    suffix = match.group("suffix") or ""
    url = f"https://togithub.com/{owner}/{repo}/{match.group('kind')}/{number}{suffix}"
    return f"[{owner}/{repo}#{number}]({url})"


def massage_markdown_links(text: str) -> str:
    """Turn bare GitHub issue, PR and discussion URLs into redirector links."""
    return _BARE_REFERENCE_RE.sub(_link_reference, text)


def massage_markdown(text: str, is_ghe: bool = False) -> str:
    """
    Prepare a body for posting.

    On GitHub Enterprise the body is only truncated.
    """
    if is_ghe:
        return smart_truncate(text)
    massaged = massage_markdown_links(text)
    for pattern, replacement in _LINK_TARGET_REWRITES:
        massaged = pattern.sub(replacement, massaged)
    return smart_truncate(massaged)
