import logging
import os
from urllib.parse import urljoin
from dotenv import load_dotenv
from .utils import open_session, get_jwt_token
from typing import Any, Optional, Mapping

logger = logging.getLogger(__name__)


class ChainClient:
    """HTTP client for the chain gateway that fronts tickets, passports and tokens.

    The lottery engine only talks to the chain through the methods in the
    "collaborator" section below, so tests substitute a subclass that
    overrides them without opening a session.
    """

    def __init__(self, base_fqdn: Optional[str] = None, timeout: int = 45):
        load_dotenv()
        fqdn = base_fqdn or os.getenv("CHAIN_BASE_FQDN")
        if not fqdn:
            raise ValueError("Environment variable 'CHAIN_BASE_FQDN' is not set")

        self.base_url = f"https://{fqdn}".rstrip("/")
        session_info = open_session()
        if not session_info or len(session_info) != 2:
            raise ValueError("open_session() must return (session, csrf_token)")
        self.session, self.csrf = session_info
        self.jwt = get_jwt_token(self.session)
        self.timeout = timeout

    # -------- headers --------
    @property
    def public_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json"}

    @property
    def auth_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.jwt}"}

    @property
    def auth_csrf_headers(self) -> Mapping[str, str]:
        return {**self.auth_headers, "X-CSRFTOKEN": self.csrf}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        return_in_json: bool = True,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers or self.public_headers,
            params=params,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        if not return_in_json:
            return r.content
        return r.json() if r.content else None

    # -------- ticket collaborators --------
    def organization_of(self, ticket_contract: str) -> Optional[str]:
        """Return the organization owning ``ticket_contract``.

        ``None`` means the address does not implement the ticket interface.
        """
        info = self._request(
            "GET", f"/api/v1/tickets/{ticket_contract}/info", headers=self.auth_headers
        )
        if not info or not info.get("is_ticket_contract"):
            return None
        return info.get("organization")

    def campaigns_of(self, organization: str) -> list[str]:
        """Return the organization's ticket contracts in campaign order."""
        payload = self._request(
            "GET",
            f"/api/v1/organizations/{organization}/ticket-contracts",
            headers=self.auth_headers,
        )
        return list(payload or [])

    def ticket_count(self, ticket_contract: str) -> int:
        """Return how many tickets ``ticket_contract`` currently holds."""
        payload = self._request(
            "GET", f"/api/v1/tickets/{ticket_contract}/supply", headers=self.auth_headers
        )
        return int(payload["count"])

    def owner_of(self, ticket_contract: str, local_id: int) -> str:
        """Return the current owner of ticket ``local_id``."""
        payload = self._request(
            "GET",
            f"/api/v1/tickets/{ticket_contract}/{local_id}/owner",
            headers=self.auth_headers,
        )
        return payload["owner"]

    def is_eligible_for_direct_payout(self, address: str) -> bool:
        """Return whether ``address`` holds a verified passport."""
        payload = self._request(
            "GET", f"/api/v1/passports/{address}", headers=self.auth_headers
        )
        return bool(payload and payload.get("verified"))

    def is_contract(self, address: str) -> bool:
        payload = self._request(
            "GET", f"/api/v1/accounts/{address}", headers=self.auth_headers
        )
        return bool(payload and payload.get("is_contract"))

    # -------- token collaborators --------
    def token_balance(self, token: str, holder: str) -> int:
        payload = self._request(
            "GET",
            f"/api/v1/tokens/{token}/balances/{holder}",
            headers=self.auth_headers,
        )
        # Amounts travel as decimal strings so 256-bit values survive JSON.
        return int(payload["balance"])

    def transfer_token(self, token: str, sender: str, to: str, amount: int) -> bool:
        """Transfer ``amount`` base units of ``token`` and report success."""
        response = self._request(
            "POST",
            f"/api/v1/tokens/{token}/transfer",
            headers=self.auth_csrf_headers,
            json={"from": sender, "to": to, "amount": str(amount)},
        )
        succeeded = isinstance(response, dict) and response.get("status") == "success"
        if not succeeded:
            logger.warning("Token transfer of %s to %s was rejected", amount, to)
        return succeeded
