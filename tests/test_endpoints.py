from trade_macro_dashboard.config import WITS, Comtrade, Frankfurter, WorldBank, redact_url


def test_wits_json_url() -> None:
    assert WITS.json("tradestats-trade", reporter="IND", partner="CHN", product="999999") == (
        "https://wits.worldbank.org/API/V1/SDMX/V21/datasource/tradestats-trade"
        "/reporter/IND/year/all/partner/CHN/product/999999/indicator/all?format=JSON"
    )


def test_wits_sdmx_url() -> None:
    url = WITS.sdmx(
        "DF_WITS_TradeStats_Trade",
        reporter="ind",
        partner="chn",
        product="total",
        indicator="MPRT-TRD-VL",
        start_period="2015",
        end_period="2020",
    )
    assert url == (
        "https://wits.worldbank.org/API/V1/SDMX/V21/rest/data/DF_WITS_TradeStats_Trade"
        "/A.ind.chn.total.MPRT-TRD-VL/?startPeriod=2015&endPeriod=2020&detail=Full"
    )


def test_worldbank_url_encodes_the_date_range() -> None:
    assert WorldBank.indicator("IND", "NY.GDP.MKTP.CD", "2000:2024", page=2) == (
        "https://api.worldbank.org/v2/country/IND/indicator/NY.GDP.MKTP.CD"
        "?format=json&per_page=500&page=2&date=2000%3A2024"
    )


def test_frankfurter_urls() -> None:
    assert Frankfurter.latest() == "https://api.frankfurter.dev/v1/latest?base=USD&symbols=INR,CNY"
    assert Frankfurter.historical("2024-01-02") == (
        "https://api.frankfurter.dev/v1/2024-01-02?base=USD&symbols=INR,CNY"
    )
    assert Frankfurter.series("2020-01-01", "2020-12-31", symbols="INR") == (
        "https://api.frankfurter.dev/v1/2020-01-01..2020-12-31?base=USD&symbols=INR"
    )


def test_comtrade_url_appends_key() -> None:
    url = Comtrade.data(Comtrade.DEFAULT_BASE, 699, 156, "2022", api_key="secret")
    assert url == (
        "https://comtradeapi.un.org/data/v1/get/C/A/HS?reporterCode=699&partnerCode=156"
        "&period=2022&cmdCode=TOTAL&flowCode=M&includeDesc=true&subscription-key=secret"
    )


def test_redact_url_hides_the_subscription_key() -> None:
    url = Comtrade.data(Comtrade.DEFAULT_BASE, 699, 156, "2022", api_key="secret")

    redacted = redact_url(url)

    assert "secret" not in redacted
    assert redacted.endswith("&includeDesc=true&subscription-key=***")
    assert redact_url(WITS.DATAFLOW) == WITS.DATAFLOW
