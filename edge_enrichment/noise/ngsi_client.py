import logging
from datetime import datetime
from typing import List, Optional

import requests
from pydantic import ValidationError

from edge_enrichment.exceptions import TransportError
from edge_enrichment.noise.models import NOISE_LEVEL_LIST, NoiseLevelObserved

logger = logging.getLogger(__name__)


class NgsiClient:
    """Minimal client for listing entities from an NGSI v2 context broker."""

    def __init__(self, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def list_noise_level_observed(
        self, server_url: str, modified_since: Optional[datetime] = None
    ) -> Optional[List[NoiseLevelObserved]]:
        """
        Lists NoiseLevelObserved entities from the broker.

        Args:
            server_url (str): Entities endpoint of the broker, e.g. ``https://ngsi.example.com/v2/entities``.
            modified_since (Optional[datetime]): Only return entities modified after this time.

        Returns:
            Optional[List[NoiseLevelObserved]]: The entities, or None when the broker
            answers with a non-200 status or an unreadable body.

        Raises:
            TransportError: If the broker could not be reached.
        """
        params = {"type": "NoiseLevelObserved"}
        if modified_since is not None:
            params["q"] = f"dateModified>{modified_since.isoformat()}"

        try:
            response = self.session.get(server_url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Error fetching noise levels from {server_url}: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Failed to list noise levels from {server_url}: {response.status_code} {response.text}"
            )
            return None

        try:
            return NOISE_LEVEL_LIST.validate_python(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Could not decode noise levels from {server_url}: {e}")
            return None
