"""
Public profile enrichment from GitHub
"""

import logging
from collections import Counter
from urllib.parse import urlparse
import requests

logger = logging.getLogger(__name__)

GITHUB_API_BASE = 'https://api.github.com'


def github_username(github_url):
    """Extract the account name from a github.com profile URL"""
    parsed = urlparse(github_url)
    if parsed.netloc.lower() not in ('github.com', 'www.github.com'):
        return None
    path = parsed.path.strip('/')
    return path.split('/')[0] if path else None


class ProfileEnhancer:
    def __init__(self, api_base=GITHUB_API_BASE, timeout=10):
        self.api_base = api_base
        self.timeout = timeout

    def _get(self, path, **params):
        response = requests.get(f'{self.api_base}{path}', params=params or None, timeout=self.timeout,
                                headers={'Accept': 'application/vnd.github+json'})
        response.raise_for_status()
        return response.json()

    def fetch_github(self, github_url):
        """Summary of a public GitHub profile, or None when it cannot be fetched"""
        username = github_username(github_url)
        if not username:
            return None

        try:
            profile = self._get(f'/users/{username}')
            repos = self._get(f'/users/{username}/repos', per_page=100, sort='updated')
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"GitHub enrichment failed for {username}: {str(e)}")
            return None

        languages = Counter(repo.get('language') for repo in repos if repo.get('language'))
        return {
            'username': profile.get('login', username),
            'name': profile.get('name'),
            'bio': profile.get('bio'),
            'company': profile.get('company'),
            'location': profile.get('location'),
            'blog': profile.get('blog'),
            'followers': profile.get('followers', 0),
            'public_repos': profile.get('public_repos', 0),
            'top_languages': [language for language, _ in languages.most_common(5)],
            'avatar_url': profile.get('avatar_url'),
        }
