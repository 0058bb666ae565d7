"""Tests for job building and RAW sibling discovery."""
from pathlib import Path

from manifest_sorter.core.config import CollisionPolicy, RunMode, RunOptions, RunRequest
from manifest_sorter.core.models import ManifestRow
from manifest_sorter.services.jobs import JobBuilder, RawSiblingFinder

from .fixtures import create_image


def make_request(tmp_path: Path, mode=RunMode.copy, raw=False, **mapping) -> RunRequest:
    return RunRequest(
        manifest_path=tmp_path / "m.csv",
        destination_root=None if mode == RunMode.scan else tmp_path / "out",
        folder_mapping=mapping or {"A": tmp_path / "src"},
        options=RunOptions(mode=mode, include_raw_siblings=raw, max_workers=1),
    )


class TestRawSiblingFinder:
    """Tests for RawSiblingFinder."""

    def test_finds_case_insensitive_siblings(self, tmp_path: Path):
        create_image(tmp_path / "IMG_1.jpg")
        (tmp_path / "IMG_1.CR2").write_bytes(b"raw")
        (tmp_path / "IMG_1.nef").write_bytes(b"raw")
        (tmp_path / "IMG_2.cr2").write_bytes(b"raw")

        siblings = RawSiblingFinder().find(tmp_path, "IMG_1.jpg")

        assert sorted(siblings) == ["IMG_1.CR2", "IMG_1.nef"]

    def test_image_itself_is_not_a_sibling(self, tmp_path: Path):
        (tmp_path / "shot.dng").write_bytes(b"raw")
        assert RawSiblingFinder().find(tmp_path, "shot.dng") == []

    def test_missing_directory(self, tmp_path: Path):
        assert RawSiblingFinder().find(tmp_path / "nope", "a.jpg") == []

    def test_listing_is_cached(self, tmp_path: Path):
        finder = RawSiblingFinder()
        assert finder.find(tmp_path, "a.jpg") == []

        # Created after the first listing; not seen
        (tmp_path / "a.cr2").write_bytes(b"raw")
        assert finder.find(tmp_path, "a.jpg") == []


class TestJobBuilder:
    """Tests for JobBuilder."""

    def test_one_job_per_mapped_row(self, tmp_path: Path):
        request = make_request(tmp_path)
        builder = JobBuilder(request, ["A"])

        jobs = list(builder.build([ManifestRow("A", "1.jpg"), ManifestRow("A", "2.jpg")]))

        assert [job.image_name for job in jobs] == ["1.jpg", "2.jpg"]
        assert [job.job_id for job in jobs] == [0, 1]
        job = jobs[0]
        assert job.source_path == request.folder_mapping["A"] / "1.jpg"
        assert job.dest_path == request.destination_root / "A" / "1.jpg"
        assert job.mode == RunMode.copy
        assert job.collision == CollisionPolicy.rename

    def test_unmapped_rows_are_counted(self, tmp_path: Path):
        seen = []
        builder = JobBuilder(make_request(tmp_path), ["A"], on_unmapped_row=seen.append)

        jobs = list(builder.build([
            ManifestRow("A", "1.jpg"),
            ManifestRow("B", "2.jpg"),
            ManifestRow("B", "3.jpg"),
        ]))

        assert len(jobs) == 1
        assert seen == [ManifestRow("B", "2.jpg"), ManifestRow("B", "3.jpg")]

    def test_scan_jobs_have_no_destination(self, tmp_path: Path):
        builder = JobBuilder(make_request(tmp_path, mode=RunMode.scan), ["A"])

        (job,) = builder.jobs_for_row(ManifestRow("A", "1.jpg"))

        assert job.dest_dir is None
        assert job.dest_path is None
        assert job.mode == RunMode.scan

    def test_raw_siblings_follow_their_image(self, tmp_path: Path):
        src = tmp_path / "src"
        create_image(src / "1.jpg")
        (src / "1.cr2").write_bytes(b"raw")
        builder = JobBuilder(make_request(tmp_path, raw=True), ["A"])

        jobs = list(builder.build([ManifestRow("A", "1.jpg"), ManifestRow("A", "2.jpg")]))

        assert [(job.image_name, job.raw_sibling) for job in jobs] == [
            ("1.jpg", False),
            ("1.cr2", True),
            ("2.jpg", False),
        ]
        assert [job.job_id for job in jobs] == [0, 1, 2]

    def test_raw_siblings_off_by_default(self, tmp_path: Path):
        src = tmp_path / "src"
        create_image(src / "1.jpg")
        (src / "1.cr2").write_bytes(b"raw")
        builder = JobBuilder(make_request(tmp_path), ["A"])

        assert len(builder.jobs_for_row(ManifestRow("A", "1.jpg"))) == 1

    def test_no_raw_siblings_for_scan(self, tmp_path: Path):
        src = tmp_path / "src"
        create_image(src / "1.jpg")
        (src / "1.cr2").write_bytes(b"raw")
        request = make_request(tmp_path, mode=RunMode.scan, raw=True)

        assert len(JobBuilder(request, ["A"]).jobs_for_row(ManifestRow("A", "1.jpg"))) == 1
