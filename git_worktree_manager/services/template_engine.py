"""Worktree directory naming from templates."""

import re
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlparse

from git_worktree_manager.constants import DEFAULT_SANITIZE_CHARS
from git_worktree_manager.exceptions import TemplateError
from git_worktree_manager.logging_config import get_logger

logger = get_logger(__name__)

TEMPLATE_VARIABLES = ("branch", "host", "owner", "repository")

_TOKEN_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
# user@host:owner/repo.git
_SCP_RE = re.compile(r"^(?:[^@/\s]+@)?(?P<host>[^:/\s]+):(?P<path>[^/].*)$")
_URL_SCHEMES = ("https", "http", "ssh", "git")


@dataclass(frozen=True)
class RemoteInfo:
    """Components of a remote URL usable in naming templates."""

    host: str
    owner: str
    repository: str


def parse_remote_url(url: Optional[str]) -> Optional[RemoteInfo]:
    """Parse an origin URL into host/owner/repository.

    Supports ``https://``, ``http://``, ``ssh://``, ``git://`` and the scp-like
    ``user@host:owner/repo.git`` form. Owners may span several path segments
    (``gitlab.com/group/sub/repo`` -> owner ``group/sub``).

    Returns:
        RemoteInfo, or None if the URL cannot be parsed
    """
    if not url:
        return None
    url = url.strip()

    if "://" in url:
        parsed = urlparse(url)
        if parsed.scheme not in _URL_SCHEMES:
            logger.debug(f"Unsupported remote URL scheme: {url}")
            return None
        try:
            host = parsed.hostname
        except ValueError:
            return None
        path = parsed.path
    else:
        match = _SCP_RE.match(url)
        if not match:
            logger.debug(f"Could not parse remote URL: {url}")
            return None
        host = match.group("host")
        path = match.group("path")

    segments = [segment for segment in path.strip("/").split("/") if segment]
    if not host or len(segments) < 2:
        return None

    repository = segments[-1]
    if repository.endswith(".git"):
        repository = repository[: -len(".git")]
    if not repository:
        return None

    return RemoteInfo(host=host, owner="/".join(segments[:-1]), repository=repository)


class TemplateEngine:
    """Renders naming templates such as ``{host}/{owner}/{repository}/{branch}``."""

    def __init__(self, sanitize_chars: Optional[Dict[str, str]] = None):
        self.sanitize_chars = dict(DEFAULT_SANITIZE_CHARS if sanitize_chars is None else sanitize_chars)
        keys = sorted(self.sanitize_chars, key=len, reverse=True)
        self._sanitize_re = re.compile("|".join(re.escape(k) for k in keys)) if keys else None

    def sanitize(self, branch: str) -> str:
        """Apply the character replacement map to a branch name (longest keys first)."""
        if self._sanitize_re is None:
            return branch
        return self._sanitize_re.sub(lambda m: self.sanitize_chars[m.group(0)], branch)

    def render(self, template: str, branch: str, remote: Optional[RemoteInfo] = None) -> str:
        """Render ``template`` for ``branch``.

        Raises:
            TemplateError: if a ``{identifier}`` remains after substitution or the
                result is not a usable relative path
        """
        values = {"branch": self.sanitize(branch)}
        if remote is not None:
            values.update(host=remote.host, owner=remote.owner, repository=remote.repository)

        rendered = _TOKEN_RE.sub(lambda m: values.get(m.group(1), m.group(0)), template)

        leftover = _TOKEN_RE.search(rendered)
        if leftover:
            name = leftover.group(1)
            message = f"unresolved template variable: `{name}`"
            if name in TEMPLATE_VARIABLES and remote is None:
                message += " (origin remote URL not available)"
            raise TemplateError(message, variable=name)

        self._validate_rendered(template, rendered)
        return rendered

    @staticmethod
    def _validate_rendered(template: str, rendered: str):
        if not rendered.strip() or not rendered.strip("/"):
            raise TemplateError(f"template '{template}' rendered an empty name")
        if rendered.startswith("/"):
            raise TemplateError(f"template '{template}' rendered an absolute path: {rendered}")
        if any(segment == ".." for segment in rendered.split("/")):
            raise TemplateError(f"template '{template}' rendered a path outside the base directory: {rendered}")
