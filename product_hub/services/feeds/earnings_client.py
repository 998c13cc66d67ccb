import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import httpx

from product_hub.core.exceptions import APIClientError, RateLimitError
from product_hub.core.llm_client import BaseLLMClient
from product_hub.schemas.catalog import EarningsReportRecord
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Top P&C insurers by market cap: (symbol, company name)
TOP_PC_INSURERS: list[tuple[str, str]] = [
    ("BRK.A", "Berkshire Hathaway Inc."),
    ("TRV", "The Travelers Companies Inc."),
    ("CB", "Chubb Limited"),
    ("AIG", "American International Group Inc."),
    ("PGR", "Progressive Corporation"),
    ("ALL", "Allstate Corporation"),
    ("HIG", "Hartford Financial Services Group Inc."),
    ("WRB", "W.R. Berkley Corporation"),
    ("CINF", "Cincinnati Financial Corporation"),
    ("RLI", "RLI Corp."),
]

PERIOD_PATTERN = re.compile(r"(\d{4})Q(\d)")


@dataclass
class EarningsBatch:
    reports: list[EarningsReportRecord] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)


def _quarter_label(period: Optional[str]) -> Optional[str]:
    match = PERIOD_PATTERN.search(period or "")
    return f"Q{match.group(2)} {match.group(1)}" if match else period


def _reported_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class EarningsFeedClient:
    """Seeking Alpha estimates via RapidAPI headers."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        api_host: str,
        timeout: float = 30,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        insurers: Optional[list[tuple[str, str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_host = api_host
        self.insurers = insurers or TOP_PC_INSURERS
        self.client = BaseLLMClient(
            api_key="",
            base_url=api_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
            transport=transport,
        )

    @property
    def headers(self) -> dict[str, str]:
        return {"x-rapidapi-key": self.api_key, "x-rapidapi-host": self.api_host}

    def transform(self, symbol: str, company_name: str, data: dict[str, Any]) -> Optional[EarningsReportRecord]:
        rows = data.get("data") or []
        if not rows:
            return None
        latest = rows[0]
        return EarningsReportRecord(
            id=f"{symbol}-{latest.get('period') or 'latest'}",
            symbol=symbol,
            company_name=company_name,
            period=_quarter_label(latest.get("period")),
            eps_actual=latest.get("eps_actual", latest.get("eps")),
            eps_estimate=latest.get("eps_estimate", latest.get("eps_consensus")),
            revenue=latest.get("revenue", latest.get("total_revenue")),
            reported_at=_reported_at(latest.get("report_date")),
        )

    async def fetch_company_earnings(self, symbol: str) -> Optional[EarningsReportRecord]:
        names = dict(self.insurers)
        if symbol not in names:
            raise APIClientError(f"Company {symbol} not found in tracked insurers")
        if not self.api_key:
            raise APIClientError("Missing earnings API key")

        data = await self.client.call_api(
            endpoint="/symbols/get-estimates",
            method="GET",
            payload={
                "symbol": symbol,
                "data_type": "eps",
                "period_type": "quarterly",
                "limit": 4,
            },
            headers=self.headers,
        )
        return self.transform(symbol, names[symbol], data)

    async def fetch_all(self) -> EarningsBatch:
        """Fetch every tracked insurer; per-company failures are collected.

        Raises:
            RateLimitError: On HTTP 429, which stops the batch
        """
        batch = EarningsBatch()
        for symbol, name in self.insurers:
            try:
                report = await self.fetch_company_earnings(symbol)
            except RateLimitError:
                raise
            except APIClientError as e:
                LOGGER.error(
                    f"Failed to fetch earnings for {name}",
                    extra={"category": "EARNINGS", "symbol": symbol, "error": str(e)},
                )
                batch.errors.append({"symbol": symbol, "name": name, "error": str(e)})
                continue
            if report is None:
                LOGGER.warning(
                    f"No earnings data available for {name}",
                    extra={"category": "EARNINGS", "symbol": symbol},
                )
                continue
            batch.reports.append(report)

        LOGGER.info(
            f"Earnings fetch complete: {len(batch.reports)}/{len(self.insurers)} successful",
            extra={"category": "EARNINGS", "failed": len(batch.errors)},
        )
        return batch
