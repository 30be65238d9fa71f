"""
Tests for the rating import service.

Each test runs the real parser and upsert engine against a throwaway
SQLite database; only the network fetch is replaced by FakeFetcher.
"""

import zipfile
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from fideratings.db import Player, RatingList, RatingSnapshot
from fideratings.exceptions import ArchiveCorrupt
from fideratings.services.rating_import import RatingImporter, list_rating_lists
from tests.helpers import FakeFetcher, player_xml, playerslist, txt_line


CARLSEN_STANDARD = player_xml(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2839, 5, 1990)
CARLSEN_BLITZ = player_xml(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2887, 10, 1990)


def _run(database, period, category):
    with database.session_scope() as session:
        return (
            session.query(RatingList)
            .filter(RatingList.period == period, RatingList.category == category)
            .one_or_none()
        )


def _snapshots(database):
    with database.session_scope() as session:
        return session.query(RatingSnapshot).order_by(RatingSnapshot.fide_id, RatingSnapshot.period).all()


def _reject_fide_id(database, fide_id):
    with database.engine.begin() as conn:
        conn.exec_driver_sql(
            f"CREATE TRIGGER reject_{fide_id} BEFORE INSERT ON players "
            f"WHEN NEW.fide_id = {fide_id} BEGIN SELECT RAISE(ABORT, 'rejected'); END"
        )


class TestSingleList:

    def test_standard_then_blitz_share_one_snapshot(self, database, write_xml):
        standard = write_xml("standard_aug25frl_xml.xml", CARLSEN_STANDARD)
        blitz = write_xml("blitz_aug25frl_xml.xml", CARLSEN_BLITZ)
        fetcher = FakeFetcher({("20250801", "standard"): standard, ("20250801", "blitz"): blitz})
        importer = RatingImporter(database, fetcher=fetcher)

        first = importer.import_rating_list("20250801", "standard")
        second = importer.import_rating_list("20250801", "blitz")

        assert first.status == "completed"
        assert second.status == "completed"
        (snapshot,) = _snapshots(database)
        assert snapshot.fide_id == 1503014
        assert snapshot.period == "20250801"
        assert (snapshot.standard_rating, snapshot.standard_games) == (2839, 5)
        assert (snapshot.blitz_rating, snapshot.blitz_games) == (2887, 10)
        assert snapshot.rapid_rating is None

    def test_completed_list_is_skipped_without_writes(self, database, write_xml):
        path = write_xml("standard.xml", CARLSEN_STANDARD)
        fetcher = FakeFetcher(default=path)
        importer = RatingImporter(database, fetcher=fetcher)
        importer.import_rating_list("20250801")

        before_run = _run(database, "20250801", "standard")
        (before_snapshot,) = _snapshots(database)

        outcome = importer.import_rating_list("20250801")

        assert outcome.status == "skipped"
        assert len(fetcher.calls) == 1
        after_run = _run(database, "20250801", "standard")
        (after_snapshot,) = _snapshots(database)
        assert after_run.import_date == before_run.import_date
        assert after_snapshot.updated_at == before_snapshot.updated_at

    def test_bookkeeping_on_completion(self, database, write_xml):
        path = write_xml(
            "rapid.xml",
            CARLSEN_STANDARD,
            player_xml("", "Broken Entry"),
            player_xml(2016192, "Nakamura, Hikaru", "USA", "M", "GM", 2807, 3, 1987),
        )
        importer = RatingImporter(database, fetcher=FakeFetcher(default=path))

        outcome = importer.import_rating_list("2025-08", "rapid")

        assert outcome.imported == 2
        assert outcome.malformed == 1
        run = _run(database, "20250801", "rapid")
        assert run.status == "completed"
        assert run.total_players == 2
        assert run.skipped_records == 1
        assert run.failed_records == 0
        assert run.completed_at is not None
        assert run.import_date is not None

    def test_unpublished_list_stays_pending(self, database):
        importer = RatingImporter(database, fetcher=FakeFetcher())

        outcome = importer.import_rating_list("20250901", "blitz")

        assert outcome.status == "unavailable"
        assert _run(database, "20250901", "blitz").status == "pending"

    def test_interrupted_run_is_retried(self, database, write_xml):
        with database.session_scope() as session:
            session.add(RatingList(period="20250801", category="standard", status="processing"))
        importer = RatingImporter(database, fetcher=FakeFetcher(default=write_xml("s.xml", CARLSEN_STANDARD)))

        outcome = importer.import_rating_list("20250801")

        assert outcome.status == "completed"
        assert _run(database, "20250801", "standard").status == "completed"

    def test_failed_list_needs_retry_flag(self, database, write_xml):
        with database.session_scope() as session:
            session.add(RatingList(period="20250801", category="standard", status="failed", error_message="boom"))
        fetcher = FakeFetcher(default=write_xml("s.xml", CARLSEN_STANDARD))
        importer = RatingImporter(database, fetcher=fetcher)

        skipped = importer.import_rating_list("20250801")
        assert skipped.status == "failed_skipped"
        assert skipped.error == "boom"
        assert fetcher.calls == []

        retried = importer.import_rating_list("20250801", retry_failed=True)
        assert retried.status == "completed"
        run = _run(database, "20250801", "standard")
        assert run.status == "completed"
        assert run.error_message is None

    def test_archive_error_marks_failed_and_raises(self, database):
        importer = RatingImporter(database, fetcher=FakeFetcher(error=ArchiveCorrupt("bad zip")))

        with pytest.raises(ArchiveCorrupt):
            importer.import_rating_list("20250801")

        run = _run(database, "20250801", "standard")
        assert run.status == "failed"
        assert "bad zip" in run.error_message

    def test_record_failure_marks_list_failed(self, database, write_xml):
        _reject_fide_id(database, 666)
        path = write_xml(
            "s.xml",
            CARLSEN_STANDARD,
            player_xml(666, "Rejected, Record", rating=1500, games=1),
        )
        importer = RatingImporter(database, fetcher=FakeFetcher(default=path))

        outcome = importer.import_rating_list("20250801")

        assert outcome.status == "failed"
        assert outcome.imported == 1
        assert outcome.failed_records == 1
        run = _run(database, "20250801", "standard")
        assert run.status == "failed"
        assert run.failed_records == 1

    def test_damaged_xml_marks_list_failed(self, database, tmp_path):
        data = playerslist(
            CARLSEN_STANDARD,
            player_xml(2016192, "Nakamura, Hikaru", "USA", "M", "GM", 2807, 3, 1987),
        )
        path = tmp_path / "standard_aug25frl_xml.xml"
        path.write_bytes(data[: data.rindex(b"<fideid>") + len(b"<fideid>201")])
        importer = RatingImporter(database, fetcher=FakeFetcher(default=path))

        outcome = importer.import_rating_list("20250801")

        assert outcome.status == "failed"
        assert outcome.imported == 1
        assert outcome.malformed == 1
        assert "damaged" in outcome.error
        run = _run(database, "20250801", "standard")
        assert run.status == "failed"
        assert run.completed_at is None
        with database.session_scope() as session:
            assert [p.fide_id for p in session.query(Player).all()] == [1503014]

    def test_atomic_mode_rolls_back_whole_file(self, database, write_xml):
        _reject_fide_id(database, 666)
        path = write_xml(
            "s.xml",
            CARLSEN_STANDARD,
            player_xml(666, "Rejected, Record", rating=1500, games=1),
        )
        importer = RatingImporter(
            database,
            fetcher=FakeFetcher(default=path),
            transaction_mode="atomic",
            batch_size=1,
        )

        with pytest.raises(IntegrityError):
            importer.import_rating_list("20250801")

        with database.session_scope() as session:
            assert session.query(Player).count() == 0
        assert _run(database, "20250801", "standard").status == "failed"

    def test_small_batches_import_everything(self, database, write_txt):
        lines = [
            txt_line(1000 + i, f"Player, {i:03d}", "ENG", "M", "", 1500 + i, 1, 1980)
            for i in range(25)
        ]
        importer = RatingImporter(
            database,
            fetcher=FakeFetcher(default=write_txt("standard_jun15frl.txt", *lines)),
            batch_size=7,
            progress_interval=10,
        )

        outcome = importer.import_rating_list("20150601")

        assert outcome.imported == 25
        assert len(_snapshots(database)) == 25

    def test_local_zip_file(self, database, tmp_path):
        zip_path = tmp_path / "blitz_aug25frl_xml.zip"
        with zipfile.ZipFile(zip_path, "w") as zf:
            zf.writestr("blitz_aug25frl_xml.xml", f"<playerslist>{CARLSEN_BLITZ}</playerslist>")
        fetcher = FakeFetcher()
        importer = RatingImporter(database, fetcher=fetcher)

        outcome = importer.import_rating_list("20250801", "blitz", local_file=zip_path)

        assert outcome.status == "completed"
        assert fetcher.calls == []
        assert _snapshots(database)[0].blitz_rating == 2887

    def test_invalid_transaction_mode(self, database):
        with pytest.raises(ValueError):
            RatingImporter(database, fetcher=FakeFetcher(), transaction_mode="eventual")


class TestMultipleLists:

    def test_import_period_reports_each_category(self, database, write_xml):
        fetcher = FakeFetcher({
            ("20250801", "standard"): write_xml("s.xml", CARLSEN_STANDARD),
            ("20250801", "blitz"): write_xml("b.xml", CARLSEN_BLITZ),
        })
        importer = RatingImporter(database, fetcher=fetcher)

        outcomes = importer.import_period("20250801")

        assert [(o.category, o.status) for o in outcomes] == [
            ("standard", "completed"),
            ("rapid", "unavailable"),
            ("blitz", "completed"),
        ]

    def test_import_period_tolerates_failures(self, database):
        importer = RatingImporter(database, fetcher=FakeFetcher(error=ArchiveCorrupt("bad zip")))

        outcomes = importer.import_period("20250801", ["standard", "rapid"])

        assert [o.status for o in outcomes] == ["failed", "failed"]
        assert "ArchiveCorrupt" in outcomes[0].error

    def test_historical_sweep_continues_past_missing_month(self, database, write_txt):
        path = write_txt(
            "standard.txt",
            txt_line(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2876, 9, 1990),
        )
        fetcher = FakeFetcher({("20150601", "standard"): None}, default=path)
        importer = RatingImporter(database, fetcher=fetcher)

        summary = importer.import_historical(2015, end_period="20150801", categories=["standard"])

        assert len(summary.outcomes) == 8
        assert summary.count("completed") == 7
        assert summary.count("unavailable") == 1
        assert summary.total_imported == 7
        assert _run(database, "20150601", "standard").status == "pending"
        assert _run(database, "20150701", "standard").status == "completed"
        assert len(_snapshots(database)) == 7

    def test_historical_rerun_only_retries_unfinished(self, database, write_txt):
        path = write_txt(
            "standard.txt",
            txt_line(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2876, 9, 1990),
        )
        fetcher = FakeFetcher({("20150201", "standard"): None}, default=path)
        importer = RatingImporter(database, fetcher=fetcher)
        importer.import_historical(2015, end_period="20150301", categories=["standard"])

        fetcher.files.clear()
        fetcher.calls.clear()
        summary = importer.import_historical(2015, end_period="20150301", categories=["standard"])

        assert fetcher.calls == [("20150201", "standard")]
        assert summary.count("skipped") == 2
        assert summary.count("completed") == 1

    def test_historical_summary_separates_failed_lists(self, database, write_txt):
        with database.session_scope() as session:
            session.add(RatingList(period="20150201", category="standard", status="failed", error_message="boom"))
        path = write_txt(
            "standard.txt",
            txt_line(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2876, 9, 1990),
        )
        importer = RatingImporter(database, fetcher=FakeFetcher(default=path))

        summary = importer.import_historical(2015, end_period="20150301", categories=["standard"])

        assert summary.count("completed") == 2
        assert summary.count("failed_skipped") == 1
        assert summary.count("skipped") == 0
        assert "Skipped (failed earlier): 1" in summary.summary()

    def test_import_current_month(self, database, write_xml):
        fetcher = FakeFetcher({("20250801", "standard"): write_xml("s.xml", CARLSEN_STANDARD)})
        importer = RatingImporter(database, fetcher=fetcher)

        outcomes = importer.import_current_month(categories=["standard"], today=date(2025, 8, 19))

        assert outcomes[0].period == "20250801"
        assert outcomes[0].status == "completed"

    def test_list_rating_lists_newest_first(self, database, write_xml):
        fetcher = FakeFetcher(default=write_xml("s.xml", CARLSEN_STANDARD))
        importer = RatingImporter(database, fetcher=fetcher)
        importer.import_rating_list("20250701")
        importer.import_rating_list("20250801")

        with database.session_scope() as session:
            periods = [run.period for run in list_rating_lists(session)]
        assert periods == ["20250801", "20250701"]
