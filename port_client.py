"""
Port API client

Thin wrapper over the Port REST API used to export an organization's
configuration. A client is created explicitly per run and passed to whoever
needs it.
"""

from typing import Any, Dict, Optional

import requests


DEFAULT_BASE_URL = "https://api.getport.io/v1"


def generate_access_token(client_id: str, client_secret: str, base_url: str = DEFAULT_BASE_URL,
                          session: Optional[requests.Session] = None) -> str:
    """Exchange client credentials for a bearer token"""
    if not client_id or not client_secret:
        raise ValueError("client_id and client_secret are required to generate an access token")

    http = session or requests.Session()
    try:
        response = http.post(
            f"{base_url}/auth/access_token",
            json={'clientId': client_id, 'clientSecret': client_secret},
        )
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        details = e.response.text if getattr(e, 'response', None) is not None else e
        print(f"OAuth token generation failed: {details}")
        raise

    token = response.json().get('accessToken')
    if not token:
        raise ValueError("Access token missing from authentication response")
    return token


class PortAPIClient:
    """Client for interacting with the Port API"""

    def __init__(self, client_id: Optional[str] = None, client_secret: Optional[str] = None,
                 base_url: str = DEFAULT_BASE_URL, bearer_token: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        if not bearer_token:
            bearer_token = generate_access_token(client_id, client_secret, self.base_url, self.session)
        self.headers = {
            'Authorization': f'Bearer {bearer_token}',
            'Content-Type': 'application/json'
        }

    def get(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        """Make an authenticated GET request and return the decoded JSON body"""
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.get(url, headers=self.headers, params=params or {})
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            print(f"Request error: GET {endpoint}: {e}")
            raise
        return response.json()

    def list_actions(self) -> Dict:
        return self.get('/actions', params={'version': 'v2'})

    def list_blueprints(self) -> Dict:
        return self.get('/blueprints')

    def list_scorecards(self) -> Dict:
        return self.get('/scorecards')

    def list_integrations(self) -> Dict:
        return self.get('/integration')

    def list_webhooks(self) -> Dict:
        return self.get('/webhooks')

    def list_pages(self) -> Dict:
        return self.get('/pages')

    def list_folders(self) -> Dict:
        """The catalog sidebar, which holds folders alongside pages"""
        return self.get('/sidebars/catalog')

    def list_entities(self, blueprint_identifier: str) -> Dict:
        return self.get(f'/blueprints/{blueprint_identifier}/entities')
