"""Canonical API endpoint definitions.

Every upstream URL the pipeline requests is built here.

References:
 - WITS API: https://wits.worldbank.org/witsapiintro.aspx?lang=en
 - World Bank Indicators V2: https://datahelpdesk.worldbank.org/knowledgebase/articles/898581
 - Frankfurter: https://frankfurter.dev/
 - UN Comtrade: https://comtradedeveloper.un.org/
"""

import re
from urllib.parse import urlencode


class WITS:
    """World Integrated Trade Solution URL builders."""

    BASE = "https://wits.worldbank.org/API/V1/SDMX/V21"

    # SDMX 2.1 metadata (XML)
    DATAFLOW = f"{BASE}/rest/dataflow/wbg_wits/"
    CODELISTS = f"{BASE}/rest/codelist/all"
    DSD_TRADESTATS = f"{BASE}/rest/datastructure/WBG_WITS/TRADESTATS/"
    DSD_TARIFF_TRAINS = f"{BASE}/rest/datastructure/WBG_WITS/TARIFF_TRAINS/"

    # Special dimension codes
    PARTNER_NOT_APPLICABLE = "999"
    PRODUCT_NOT_APPLICABLE = "999999"

    DIMENSIONS = ("reporter", "year", "partner", "product", "indicator")

    @classmethod
    def json(
        cls,
        datasource: str,
        reporter: str = "all",
        year: str = "all",
        partner: str = "all",
        product: str = "all",
        indicator: str = "all",
    ) -> str:
        """
        Build a URL-based WITS data request.

        datasource: tradestats-trade | tradestats-tariff | tradestats-development
        """
        return (
            f"{cls.BASE}/datasource/{datasource}/reporter/{reporter}/year/{year}"
            f"/partner/{partner}/product/{product}/indicator/{indicator}?format=JSON"
        )

    @classmethod
    def sdmx(
        cls,
        dataflow: str,
        freq: str = "A",
        reporter: str = "",
        partner: str = "",
        product: str = "",
        indicator: str = "",
        start_period: str | None = None,
        end_period: str | None = None,
        detail: str = "Full",
    ) -> str:
        """Build an SDMX data URL (XML)."""
        key = ".".join([freq, reporter, partner, product, indicator])
        params: dict[str, str] = {}
        if start_period:
            params["startPeriod"] = start_period
        if end_period:
            params["endPeriod"] = end_period
        params["detail"] = detail
        return f"{cls.BASE}/rest/data/{dataflow}/{key}/?{urlencode(params)}"


class WorldBank:
    """World Bank Indicators API (V2) URL builders."""

    BASE = "https://api.worldbank.org/v2"

    GDP_CURRENT_USD = "NY.GDP.MKTP.CD"
    GDP_GROWTH = "NY.GDP.MKTP.KD.ZG"
    TRADE_PCT_GDP = "NE.TRD.GNFS.ZS"
    INFLATION_CPI = "FP.CPI.TOTL.ZG"

    @classmethod
    def indicator(
        cls,
        country: str,
        indicator: str,
        date: str | None = None,
        per_page: int = 500,
        page: int = 1,
    ) -> str:
        params = {"format": "json", "per_page": str(per_page), "page": str(page)}
        if date:
            params["date"] = date
        return f"{cls.BASE}/country/{country}/indicator/{indicator}?{urlencode(params)}"


class Frankfurter:
    """Frankfurter FX URL builders."""

    BASE = "https://api.frankfurter.dev"

    @classmethod
    def latest(cls, base: str = "USD", symbols: str = "INR,CNY") -> str:
        return f"{cls.BASE}/v1/latest?base={base}&symbols={symbols}"

    @classmethod
    def historical(cls, date: str, base: str = "USD", symbols: str = "INR,CNY") -> str:
        return f"{cls.BASE}/v1/{date}?base={base}&symbols={symbols}"

    @classmethod
    def series(
        cls, start: str, end: str, base: str = "USD", symbols: str = "INR,CNY"
    ) -> str:
        return f"{cls.BASE}/v1/{start}..{end}?base={base}&symbols={symbols}"


class Comtrade:
    """UN Comtrade URL builders."""

    DEFAULT_BASE = "https://comtradeapi.un.org"

    # ISO numeric reporter codes
    REPORTER_CODES = {"IND": 699, "CHN": 156}
    FLOW_CODES = {"IMPORT": "M", "EXPORT": "X"}

    @classmethod
    def data(
        cls,
        base_url: str,
        reporter_code: str | int,
        partner_code: str | int,
        period: str | int,
        cmd_code: str = "TOTAL",
        flow_code: str = "M",
        include_desc: bool = True,
        api_key: str = "",
    ) -> str:
        params = {
            "reporterCode": str(reporter_code),
            "partnerCode": str(partner_code),
            "period": str(period),
            "cmdCode": cmd_code,
            "flowCode": flow_code,
            "includeDesc": "true" if include_desc else "false",
        }
        url = f"{base_url}/data/v1/get/C/A/HS?{urlencode(params)}"
        if api_key:
            url = f"{url}&subscription-key={api_key}"
        return url


SECRET_PARAMS = ("subscription-key",)

_SECRET_RE = re.compile(r"([?&](?:%s)=)[^&#]*" % "|".join(re.escape(p) for p in SECRET_PARAMS))


def redact_url(url: str) -> str:
    """URL safe to log: secret query values are replaced with ``***``."""
    return _SECRET_RE.sub(r"\1***", url)
