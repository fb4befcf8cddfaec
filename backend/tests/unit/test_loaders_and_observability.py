import pytest

from casecast.observability import bind_run_context, configure_logging, log_stage
from casecast.schemas.feeds import MetricName
from casecast.services.loaders import FALLBACK_CHAINS, FEED_CATALOG, load_feeds, read_feed

from _helpers import wide_feed


def test_catalog_covers_every_chain_member():
    for metric, chain in FALLBACK_CHAINS.items():
        for name in chain:
            assert FEED_CATALOG[name].metric_name is metric
        assert FEED_CATALOG[chain[0]].role == "primary"
    assert len(FEED_CATALOG) == 6
    assert FALLBACK_CHAINS[MetricName.CONFIRMED] == ("confirmed_global", "confirmed_pivot")
    assert FALLBACK_CHAINS[MetricName.DEATHS] == ("deaths_global", "deaths_pivot")
    assert FALLBACK_CHAINS[MetricName.RECOVERED] == ("recovered",)
    assert FEED_CATALOG["confirmed"].role == "reference"
    assert "deaths" not in FEED_CATALOG


def test_read_feed_keeps_date_headers_verbatim(tmp_path):
    path = tmp_path / "confirmed_global.csv"
    wide_feed({"Italy": [1, 2]}).to_csv(path, index=False)
    df = read_feed(path)
    assert list(df.columns) == ["Province/State", "Country/Region", "1/22/20", "1/23/20"]


def test_load_feeds_skips_absent_files(tmp_path):
    wide_feed({"Italy": [1, 2]}).to_csv(tmp_path / "confirmed_global.csv", index=False)
    wide_feed({"Italy": [0, 1]}, region_column="Country").to_csv(tmp_path / "deaths_global.csv", index=False)
    (tmp_path / "unrelated.csv").write_text("a,b\n1,2\n")

    feeds = load_feeds(tmp_path)
    assert set(feeds) == {"confirmed_global", "deaths_global"}


def test_log_stage_passes_results_through():
    @log_stage("unit.ok")
    def work(x):
        return [x, x]

    assert work(3) == [3, 3]
    assert work.__name__ == "work"


def test_log_stage_reraises():
    @log_stage("unit.fail")
    def boom():
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        boom()


def test_configure_logging_accepts_level_and_format():
    configure_logging("debug", "console")
    configure_logging()


def test_bind_run_context_returns_run_id():
    assert bind_run_context(run_id="abc", data_dir="x") == "abc"
    generated = bind_run_context()
    assert isinstance(generated, str) and len(generated) == 12
