# tender_intel/services/secop_client.py
import httpx
from typing import List, Dict, Any, Optional
import logging

from pydantic import ValidationError

from tender_intel.core.config import settings
from tender_intel.models.schemas import TenderListing, CompetitorInfo
from tender_intel.services.unspsc import normalize_code

logger = logging.getLogger(__name__)

AWARDED_PHASES = ("Adjudicado", "Celebrado", "Liquidado")
NO_SUPPLIER_NAMES = {"No disponible", "No Adjudicado"}
COMPETITOR_FIELDS = (
    "nombre_del_proveedor, valor_total_adjudicacion, fecha_de_publicacion_del, "
    "entidad, descripci_n_del_procedimiento, codigo_principal_de_categoria"
)


class SecopClient:
    """SECOP II processes from the datos.gov.co Socrata API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        app_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url or settings.SOCRATA_API_URL
        headers = {"Accept": "application/json"}
        token = app_token if app_token is not None else settings.SOCRATA_APP_TOKEN
        if token:
            headers["X-App-Token"] = token
        self.client = httpx.AsyncClient(
            timeout=settings.SOCRATA_TIMEOUT_SECONDS,
            headers=headers,
            transport=transport
        )

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def search_processes(
        self,
        query_text: str = "",
        limit: int = 50,
        where: Optional[str] = None
    ) -> List[TenderListing]:
        """
        Most recent processes first, optionally filtered by full-text query.
        Raises on transport or HTTP errors; callers decide how to degrade.
        """
        params = {
            "$limit": limit,
            "$order": "fecha_de_publicacion_del DESC"
        }
        if query_text:
            params["$q"] = query_text
        if where:
            params["$where"] = where

        try:
            logger.info(f"Fetching SECOP processes: query='{query_text}' limit={limit}")
            response = await self.client.get(self.base_url, params=params)
            response.raise_for_status()
            processes = self._parse_processes(response.json())

            logger.info(f"Fetched {len(processes)} SECOP processes")
            return processes

        except Exception as e:
            logger.error(f"Failed to fetch SECOP processes: {str(e)}")
            raise

    async def get_historical_contracts(self, unspsc_codes: List[str], limit: int = 50) -> List[CompetitorInfo]:
        """
        Awarded contracts in the given UNSPSC codes, used to see who wins what.
        Returns an empty list on any failure.
        """
        clean_codes = [normalize_code(code).replace("'", "") for code in unspsc_codes or []]
        clean_codes = [code for code in clean_codes if code]
        if not clean_codes:
            logger.info("No UNSPSC codes provided for historical search")
            return []

        code_conditions = " OR ".join(
            f"codigo_principal_de_categoria LIKE '%{code}%'" for code in clean_codes
        )
        phases = ", ".join(f"'{phase}'" for phase in AWARDED_PHASES)
        params = {
            "$limit": limit,
            "$where": f"fase IN ({phases}) AND ({code_conditions})",
            "$order": "fecha_de_publicacion_del DESC",
            "$select": COMPETITOR_FIELDS
        }

        try:
            response = await self.client.get(self.base_url, params=params)
            response.raise_for_status()
            data = response.json()
        except Exception as e:
            logger.error(f"Error fetching historical contracts from SECOP: {str(e)}")
            return []

        logger.info(f"Found {len(data)} historical contracts from SECOP")

        competitors = []
        for item in data:
            name = (item.get("nombre_del_proveedor") or "").strip()
            if not name or name in NO_SUPPLIER_NAMES:
                continue

            try:
                award_value = float(item.get("valor_total_adjudicacion") or 0)
            except (TypeError, ValueError):
                award_value = 0.0

            competitors.append(CompetitorInfo(
                name=name,
                award_value=award_value,
                contract_date=item.get("fecha_de_publicacion_del"),
                entity=item.get("entidad"),
                description=item.get("descripci_n_del_procedimiento"),
                unspsc_code=item.get("codigo_principal_de_categoria")
            ))

        logger.info(f"Returning {len(competitors)} valid competitors after filtering")
        return competitors

    def _parse_processes(self, api_data: List[Dict[str, Any]]) -> List[TenderListing]:
        """Rows without a process ID or with unreadable fields are skipped"""
        processes = []

        for item in api_data:
            if not item.get("id_del_proceso"):
                logger.debug("Skipping row without id_del_proceso")
                continue
            try:
                processes.append(TenderListing.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable process {item.get('id_del_proceso')}: {e.error_count()} errors")

        return processes
