import pytest
from unittest.mock import patch
from vconv.config.models import GeneralConfig
from vconv.domain.errors import ArchiveError
from vconv.domain.models import JobState
from vconv.pipeline.archiver import Archiver
from vconv.pipeline.publisher import Publisher
from vconv.pipeline.resolver import OutputNameRegistry, PathResolver


def _job(work_dir, name="a.mkv", resumed=False):
    return PathResolver(GeneralConfig(), OutputNameRegistry()).build_job(work_dir / name, index=1, resumed=resumed)


def test_archive_moves_source(work_dir):
    (work_dir / "a.mkv").write_text("video")
    job = _job(work_dir)

    assert Archiver().archive(job) is True
    assert not (work_dir / "a.mkv").exists()
    assert (work_dir / "original" / "a.mkv").read_text() == "video"
    assert job.state == JobState.ARCHIVED
    assert job.archived_this_run is True


def test_archive_already_present_moves_nothing(work_dir):
    (work_dir / "original").mkdir()
    (work_dir / "original" / "a.mkv").write_text("archived")
    job = _job(work_dir, resumed=True)

    assert Archiver().archive(job) is False
    assert job.state == JobState.ARCHIVED
    assert job.archived_this_run is False


def test_archive_collision_fails_and_leaves_both_files(work_dir):
    (work_dir / "a.mkv").write_text("new")
    (work_dir / "original").mkdir()
    (work_dir / "original" / "a.mkv").write_text("old")
    job = _job(work_dir)

    with pytest.raises(ArchiveError, match="already exists"):
        Archiver().archive(job)
    assert job.archived_this_run is False
    assert (work_dir / "a.mkv").read_text() == "new"
    assert (work_dir / "original" / "a.mkv").read_text() == "old"


def test_archive_failure_raises(work_dir):
    (work_dir / "a.mkv").write_text("video")
    job = _job(work_dir)
    with patch("pathlib.Path.rename", side_effect=PermissionError("denied")):
        with pytest.raises(ArchiveError, match="denied"):
            Archiver().archive(job)
    assert (work_dir / "a.mkv").exists()


def test_restore_only_when_archived_this_run(work_dir):
    (work_dir / "original").mkdir()
    (work_dir / "original" / "a.mkv").write_text("archived earlier")
    job = _job(work_dir, resumed=True)
    Archiver().archive(job)

    assert Archiver().restore(job) is False
    assert (work_dir / "original" / "a.mkv").exists()


def test_restore_moves_back(work_dir):
    (work_dir / "a.mkv").write_text("video")
    job = _job(work_dir)
    archiver = Archiver()
    archiver.archive(job)

    assert archiver.restore(job) is True
    assert (work_dir / "a.mkv").read_text() == "video"
    assert not (work_dir / "original" / "a.mkv").exists()


def test_restore_blocked_by_new_file(work_dir):
    (work_dir / "a.mkv").write_text("video")
    job = _job(work_dir)
    archiver = Archiver()
    archiver.archive(job)
    (work_dir / "a.mkv").write_text("someone else")

    assert archiver.restore(job) is False
    assert (work_dir / "a.mkv").read_text() == "someone else"
    assert (work_dir / "original" / "a.mkv").read_text() == "video"


def test_publish_renames_temp(work_dir):
    job = _job(work_dir)
    job.converted_dir.mkdir()
    job.temp_path.write_text("encoded")

    Publisher(Archiver()).publish(job)

    assert job.output_path.read_text() == "encoded"
    assert not job.temp_path.exists()
    assert job.state == JobState.PUBLISHED


def test_discard_keeps_archive(work_dir):
    (work_dir / "a.mkv").write_text("video")
    job = _job(work_dir)
    archiver = Archiver()
    archiver.archive(job)
    job.converted_dir.mkdir()
    job.temp_path.write_text("partial")

    Publisher(archiver).discard(job)

    assert not job.temp_path.exists()
    assert job.archive_path.exists()
    assert job.state == JobState.FAILED


def test_rollback_restores_and_is_idempotent(work_dir):
    (work_dir / "a.mkv").write_text("video")
    job = _job(work_dir)
    archiver = Archiver()
    archiver.archive(job)
    job.converted_dir.mkdir()
    job.temp_path.write_text("partial")
    publisher = Publisher(archiver)

    assert publisher.rollback(job) is True
    assert publisher.rollback(job) is False
    assert (work_dir / "a.mkv").read_text() == "video"
    assert not job.temp_path.exists()
    assert job.state == JobState.ROLLED_BACK


def test_rollback_never_undoes_published(work_dir):
    job = _job(work_dir)
    job.converted_dir.mkdir()
    job.temp_path.write_text("encoded")
    publisher = Publisher(Archiver())
    publisher.publish(job)

    assert publisher.rollback(job) is False
    assert job.output_path.exists()
    assert job.state == JobState.PUBLISHED
