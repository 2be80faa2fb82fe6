"""
Schwab Trader API transaction fetcher
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from ..models import ImportFailure, ReauthenticationRequired

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.schwabapi.com/trader/v1"


class SchwabClient:
    """
    Fetches raw TRADE transactions for one account.

    Token acquisition and refresh live with the caller; a 401 surfaces as
    ReauthenticationRequired so the caller can restart the OAuth flow.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 15,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_transactions(self, account_hash: str, access_token: str,
                           start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """
        Fetch trade transactions between two instants

        Raises:
            ReauthenticationRequired: Access token rejected
            ImportFailure: Any other HTTP or transport failure
        """
        url = f"{self.base_url}/accounts/{account_hash}/transactions"
        params = {
            'startDate': _iso(start),
            'endDate': _iso(end),
            'types': 'TRADE'
        }
        headers = {
            'Authorization': f"Bearer {access_token}",
            'Accept': 'application/json'
        }

        logger.info(f"Fetching Schwab transactions {params['startDate']} -> {params['endDate']}")
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ImportFailure(f"Schwab request failed: {e}") from e

        if response.status_code == 401:
            logger.warning("Schwab rejected the access token")
            raise ReauthenticationRequired("Schwab access token expired; re-authentication required")

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise ImportFailure(f"Schwab API error {response.status_code}: {e}") from e

        data = response.json()
        if not isinstance(data, list):
            raise ImportFailure(f"Unexpected Schwab response type: {type(data).__name__}")

        logger.info(f"Fetched {len(data)} Schwab transactions")
        return data


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z')
