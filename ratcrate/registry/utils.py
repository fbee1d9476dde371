"""Helper parsers for registry records."""

import re


GITHUB_REPO_PATTERN = re.compile(
    r"github\.com[:/](?P<owner>[^/]+)/(?P<repo>[^/.]+)", re.IGNORECASE
)


def parse_github_repo(url: str | None) -> tuple[str, str] | None:
    """Extract (owner, repo) from a GitHub repository URL.

    Accepts common forms:
    - https://github.com/owner/repo
    - https://www.github.com/owner/repo
    - https://github.com/owner/repo.git
    - git@github.com:owner/repo.git

    Args:
        url: Repository URL as listed by the registry.

    Returns:
        (owner, repo) tuple, or None if it is not a GitHub repository URL.
    """
    if not url:
        return None
    match = GITHUB_REPO_PATTERN.search(url)
    if match is None:
        return None
    return match.group("owner"), match.group("repo")
