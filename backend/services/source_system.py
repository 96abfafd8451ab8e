"""
Source System REST client (Supabase / PostgREST).
Read-only: account-by-email and client-list-by-email.

Source client rows carry historical field names; they are coalesced into one
SourceClient shape here, once per row, so nothing downstream sees aliases.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from models import SourceAccount, SourceClient

logger = logging.getLogger(__name__)

# Ordered alias lists: first populated field wins
TAX_ID_ALIASES = ("cnpj", "cpf_cnpj", "document", "cpf")
NAME_ALIASES = ("name", "nome")
PHONE_ALIASES = ("phone", "telefone", "celular")
ADDRESS_ALIASES = ("address", "endereco")
DESCRIPTION_ALIASES = ("description", "observacoes", "obs")

ACCOUNT_COLUMNS = "id,email,subscription,name"


class SourceRequestError(Exception):
    """Transport failure, timeout or non-2xx answer from the Source System."""


def coalesce(row: Dict[str, Any], aliases: Sequence[str]) -> Optional[str]:
    for field in aliases:
        value = row.get(field)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def normalize_source_client(row: Dict[str, Any]) -> SourceClient:
    source_id = row.get("id")
    return SourceClient(
        source_client_id=str(source_id) if source_id is not None else None,
        name=coalesce(row, NAME_ALIASES),
        email=coalesce(row, ("email",)),
        phone=coalesce(row, PHONE_ALIASES),
        address=coalesce(row, ADDRESS_ALIASES),
        tax_id=coalesce(row, TAX_ID_ALIASES),
        description=coalesce(row, DESCRIPTION_ALIASES),
    )


class SourceSystemClient:
    """Source System API integration, authenticated with the service key."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = f"{base_url.rstrip('/')}/rest/v1"
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    async def _get(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(f"/{table}", params=params)
        except httpx.TimeoutException as e:
            raise SourceRequestError(f"Source system timeout querying {table}") from e
        except httpx.HTTPError as e:
            raise SourceRequestError(f"Source system connection failed: {e}") from e

        if response.status_code != 200:
            raise SourceRequestError(
                f"Source system error {response.status_code} querying {table}: {response.text}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SourceRequestError(f"Source system returned invalid JSON for {table}") from e
        if not isinstance(data, list):
            raise SourceRequestError(f"Unexpected payload for {table}: expected a list")
        return data

    async def find_accounts_by_email(self, email: str, limit: int = 2) -> List[SourceAccount]:
        """Profiles with exactly this email (at most `limit`, enough to detect ambiguity)."""
        rows = await self._get(
            "profiles",
            {"select": ACCOUNT_COLUMNS, "email": f"eq.{email}", "limit": str(limit)},
        )
        return [SourceAccount.model_validate(row) for row in rows]

    async def fetch_clients_by_email(self, user_email: str) -> List[SourceClient]:
        """All clients owned by the account with this email, newest first, normalized."""
        rows = await self._get(
            "clients",
            {"select": "*", "user_email": f"eq.{user_email}", "order": "created_at.desc"},
        )
        logger.info(f"Source system returned {len(rows)} client(s) for {user_email}")
        return [normalize_source_client(row) for row in rows]
