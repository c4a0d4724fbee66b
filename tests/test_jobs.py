"""Background job and CLI tests."""

import json
from unittest.mock import patch

import pytest
from conftest import make_llm, make_service

from wikigen.config import ConfigError
from wikigen.jobs.cli import build_parser, main
from wikigen.jobs.regenerate import regenerate_stale
from wikigen.jobs.warm import TopicsFileError, load_topics, warm_cache
from wikigen.llm.client import LLMError


@pytest.fixture
def stale_service(temp_db, clock):
    """Service with two expired pages; teething has more views."""
    llm = make_llm()
    service = make_service(temp_db, clock, llm=llm)
    service.pages.upsert_page("colic", "Colic", "old", confidence_score=0.5, metadata={"query": "colic"})
    service.pages.upsert_page("teething", "Teething", "old", confidence_score=0.5)
    service.pages.increment_view_count("teething")
    clock.advance(hours=49)
    service.pages.upsert_page("fever", "Fever", "fresh")
    return service


class TestRegenerateStale:
    async def test_dry_run_lists_without_generating(self, stale_service):
        summary = await regenerate_stale(stale_service, dry_run=True)

        assert [r.slug for r in summary.results] == ["teething", "colic"]
        assert {r.status for r in summary.results} == {"dry_run"}
        assert summary.to_dict()["mode"] == "dry_run"
        assert summary.exit_code == 0
        stale_service.generator.llm.generate_with_usage.assert_not_called()

    async def test_live_run_refreshes_pages(self, stale_service):
        summary = await regenerate_stale(stale_service, delay_ms=0)

        assert (summary.total, summary.success, summary.failed) == (2, 2, 0)
        assert summary.exit_code == 0
        assert stale_service.pages.get_stale_pages() == []
        teething = stale_service.pages.fetch("teething")
        assert teething.regeneration_count == 1
        assert teething.view_count == 1
        assert summary.results[0].previous_views == 1

    async def test_max_pages_limits_run(self, stale_service):
        summary = await regenerate_stale(stale_service, max_pages=1, delay_ms=0)

        assert [r.slug for r in summary.results] == ["teething"]

    async def test_failures_continue_and_set_exit_code(self, stale_service):
        stale_service.generator.llm.generate_with_usage.side_effect = LLMError("provider down")

        summary = await regenerate_stale(stale_service, delay_ms=0)

        assert summary.failed == 2
        assert summary.exit_code == 1
        assert "provider down" in summary.results[0].error
        assert stale_service.pages.fetch("colic").content == "old"

    async def test_page_deleted_mid_run_is_recorded_as_failure(self, stale_service):
        regenerate_page = stale_service.regenerate_page

        async def delete_then_regenerate(slug):
            if slug == "colic":
                stale_service.pages.delete_page("colic")
            return await regenerate_page(slug)

        stale_service.regenerate_page = delete_then_regenerate

        summary = await regenerate_stale(stale_service, delay_ms=0)

        assert (summary.success, summary.failed) == (1, 1)
        failed = [r for r in summary.results if r.status == "error"]
        assert failed[0].slug == "colic"
        assert "not found" in failed[0].error
        assert summary.exit_code == 1


class TestLoadTopics:
    def test_bare_list(self, tmp_path):
        path = tmp_path / "topics.yaml"
        path.write_text("- swaddling techniques\n- colic\n- '  '\n")

        assert load_topics(path) == ["swaddling techniques", "colic"]

    def test_mapping(self, tmp_path):
        path = tmp_path / "topics.yaml"
        path.write_text("topics:\n  - teething\n")

        assert load_topics(path) == ["teething"]

    @pytest.mark.parametrize(
        "text", ["topics: [unclosed", "just a string", "topics: []", "other: [colic]"]
    )
    def test_invalid_files(self, tmp_path, text):
        path = tmp_path / "topics.yaml"
        path.write_text(text)

        with pytest.raises(TopicsFileError):
            load_topics(path)


async def test_warm_cache_uses_service(temp_db, clock):
    service = make_service(temp_db, clock)
    service.pages.upsert_page("colic", "Colic", "content")

    summary = await warm_cache(service, topics=["colic", "teething"], delay_ms=0)

    assert (summary.success, summary.skipped) == (1, 1)
    assert service.pages.exists("teething")


class TestCli:
    def test_parser_defaults(self):
        args = build_parser().parse_args(["regenerate-stale"])

        assert args.max_pages == 10
        assert args.dry_run is False
        assert args.delay_ms is None

    def test_max_pages_default_follows_batch_size(self, monkeypatch):
        monkeypatch.setenv("WIKI_REGEN_BATCH_SIZE", "5")

        args = build_parser().parse_args(["regenerate-stale"])

        assert args.max_pages == 5

    def test_dry_run_prints_summary(self, stale_service, temp_db, capsys):
        with patch("wikigen.jobs.cli.create_service", return_value=(stale_service, temp_db)):
            exit_code = main(["regenerate-stale", "--dry-run"])

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["mode"] == "dry_run"
        assert output["total"] == 2

    def test_live_failure_exits_nonzero(self, stale_service, temp_db, capsys):
        stale_service.generator.llm.generate_with_usage.side_effect = LLMError("provider down")

        with patch("wikigen.jobs.cli.create_service", return_value=(stale_service, temp_db)):
            exit_code = main(["regenerate-stale", "--delay-ms", "0"])

        assert exit_code == 1
        assert json.loads(capsys.readouterr().out)["failed"] == 2

    def test_warm_cache_with_topics_file(self, temp_db, clock, tmp_path, capsys):
        service = make_service(temp_db, clock)
        topics = tmp_path / "topics.yaml"
        topics.write_text("- colic\n- teething\n")

        with patch("wikigen.jobs.cli.create_service", return_value=(service, temp_db)):
            exit_code = main(["warm-cache", "--topics-file", str(topics), "--delay-ms", "0"])

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)["success"] == 2

    def test_bad_topics_file_exits_before_startup(self, tmp_path):
        topics = tmp_path / "topics.yaml"
        topics.write_text("nope")

        with patch("wikigen.jobs.cli.create_service") as create_service:
            assert main(["warm-cache", "--topics-file", str(topics)]) == 1

        create_service.assert_not_called()

    def test_startup_failure_exits_nonzero(self):
        with patch("wikigen.jobs.cli.create_service", side_effect=ConfigError("bad config")):
            assert main(["regenerate-stale"]) == 1
