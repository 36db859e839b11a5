"""
GitHub issue creation for decoded emails.

Usage:
    from integrations import github_issues

    config = github_issues.read_config()
    login = github_issues.find_github_user_by_email("jane@example.com", config)
    url = github_issues.create_issue(config, title="Hello", body="Hi there")
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from domain.errors import ConfigurationError, IssueCreationError
from domain.models import ParsedEmail

logger = logging.getLogger(__name__)

GITHUB_API_URL = os.environ.get('GITHUB_API_URL', 'https://api.github.com').rstrip('/')
GITHUB_API_VERSION = '2022-11-28'
REQUEST_TIMEOUT_SECONDS = float(os.environ.get('GITHUB_TIMEOUT_SECONDS', '10'))

ISSUE_LABEL = 'email-to-issue'
MEMBER_LABEL = 'member-email'

# Module-level session (connection reuse across warm invocations)
session = requests.Session()


@dataclass(frozen=True)
class GitHubConfig:
    """Target repository and credentials."""
    owner: str
    repo: str
    token: str


def read_config() -> GitHubConfig:
    """
    Read GitHub settings from the environment.

    Raises:
        ConfigurationError: If GITHUB_USERNAME, GITHUB_REPO or GITHUB_TOKEN is missing
    """
    owner = os.environ.get('GITHUB_USERNAME', '').strip()
    repo = os.environ.get('GITHUB_REPO', '').strip()
    token = os.environ.get('GITHUB_TOKEN', '').strip()

    if not owner or not repo or not token:
        raise ConfigurationError("GITHUB_USERNAME, GITHUB_REPO, and GITHUB_TOKEN must be set")

    return GitHubConfig(owner=owner, repo=repo, token=token)


def _headers(config: GitHubConfig) -> Dict[str, str]:
    return {
        'Accept': 'application/vnd.github+json',
        'Authorization': f"Bearer {config.token}",
        'X-GitHub-Api-Version': GITHUB_API_VERSION,
    }


def _get(path: str, config: GitHubConfig) -> Any:
    response = session.get(
        f"{GITHUB_API_URL}{path}",
        headers=_headers(config),
        timeout=REQUEST_TIMEOUT_SECONDS
    )
    response.raise_for_status()
    return response.json()


def _user_email(login: str, config: GitHubConfig) -> Optional[str]:
    """Public email of a GitHub user, or None when hidden or unreadable."""
    try:
        data = _get(f"/users/{login}", config)
    except (requests.RequestException, ValueError) as e:
        logger.info(f"Skipping GitHub user {login}: {e}")
        return None
    email = data.get('email') if isinstance(data, dict) else None
    return email.lower() if email else None


def _logins(entries: Any) -> List[str]:
    """Logins from a members/collaborators listing; anything unexpected yields none."""
    if not isinstance(entries, list):
        logger.info(f"Unexpected GitHub listing, treating as empty: {type(entries).__name__}")
        return []
    return [e['login'] for e in entries if isinstance(e, dict) and e.get('login')]


def _match_logins(logins: List[str], email: str, config: GitHubConfig) -> Optional[str]:
    for login in logins:
        if _user_email(login, config) == email:
            return login
    return None


def find_github_user_by_email(email: str, config: GitHubConfig) -> Optional[str]:
    """
    Resolve a sender email to a GitHub login.

    Checks, in order: the repository owner, the owner's organization
    members (when the owner is an organization), then repository
    collaborators. Only public profile emails can match. Every lookup
    failure is logged and treated as "no match".

    Args:
        email: Lowercased sender email address
        config: GitHub configuration

    Returns:
        GitHub login, or None if no match
    """
    if not email:
        return None

    email = email.lower()

    try:
        owner_data = _get(f"/users/{config.owner}", config)
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Error finding GitHub user by email: {e}")
        return None

    if not isinstance(owner_data, dict):
        logger.warning("Unexpected GitHub owner response, treating as no match")
        return None

    owner_email = owner_data.get('email')
    if owner_email and owner_email.lower() == email:
        return config.owner

    if owner_data.get('type') == 'Organization':
        try:
            members = _get(f"/orgs/{config.owner}/members", config)
        except (requests.RequestException, ValueError) as e:
            logger.info(f"Could not access organization members: {e}")
        else:
            login = _match_logins(_logins(members), email, config)
            if login:
                return login

    try:
        collaborators = _get(f"/repos/{config.owner}/{config.repo}/collaborators", config)
    except (requests.RequestException, ValueError) as e:
        logger.info(f"Could not access repository collaborators: {e}")
        return None

    return _match_logins(_logins(collaborators), email, config)


def build_issue_body(parsed: ParsedEmail, github_user: Optional[str] = None) -> str:
    """
    Render the issue body for a decoded email.

    Inline cid: references are replaced by hosted image URLs; hosted images
    the body never referenced are listed under an "Attachments" heading.
    A known sender gets an attribution footer.
    """
    body = parsed.body_with_urls()

    unreferenced = [a for a in parsed.images_with_urls if a.url not in body]
    if unreferenced:
        images = '\n'.join(f"![{a.filename}]({a.url})" for a in unreferenced)
        body += f"\n\n### Attachments\n\n{images}"

    if github_user and parsed.sender_email:
        body += f"\n\n---\n*Originally sent by @{github_user} ({parsed.sender_email})*"

    return body


def create_issue(
    config: GitHubConfig,
    title: str,
    body: str,
    labels: Optional[List[str]] = None
) -> str:
    """
    Create an issue in the configured repository.

    Args:
        config: GitHub configuration
        title: Issue title
        body: Issue body (markdown)
        labels: Issue labels (default: ["email-to-issue"])

    Returns:
        str: HTML URL of the created issue

    Raises:
        IssueCreationError: If the request fails or GitHub rejects it
    """
    payload = {
        'title': title,
        'body': body,
        'labels': labels if labels is not None else [ISSUE_LABEL],
    }

    try:
        response = session.post(
            f"{GITHUB_API_URL}/repos/{config.owner}/{config.repo}/issues",
            headers=_headers(config),
            json=payload,
            timeout=REQUEST_TIMEOUT_SECONDS
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Failed to create GitHub issue in {config.owner}/{config.repo}: {e}")
        raise IssueCreationError(f"Unable to create GitHub issue: {e}") from e

    issue_url = response.json().get('html_url', '')
    logger.info(f"Issue created successfully: {issue_url}")
    return issue_url


def publish(parsed: ParsedEmail, config: GitHubConfig) -> str:
    """
    Publish a decoded email as a GitHub issue.

    Returns:
        str: HTML URL of the created issue
    """
    github_user = find_github_user_by_email(parsed.sender_email, config)
    logger.info(f"Found GitHub user: {github_user}")

    labels = [ISSUE_LABEL]
    if github_user:
        labels.append(MEMBER_LABEL)

    return create_issue(
        config,
        title=parsed.subject,
        body=build_issue_body(parsed, github_user),
        labels=labels
    )
