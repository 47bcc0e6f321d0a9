"""Tests for duplicate detection."""
import pytest
from unittest.mock import AsyncMock

from wauploader.models import MediaType, TrackedFile, UploadStatus
from wauploader.services.dedup import DuplicateDetector, blake3_file


@pytest.mark.asyncio
async def test_blake3_file(tmp_path):
    """Test blake3 calculation on a file."""
    test_file = tmp_path / "test.txt"
    test_file.write_text("hello world")

    result = await blake3_file(test_file)

    assert len(result) == 64
    assert result == "d74981efa70a0c880b8d8c1985d075dbcbf679b99a5f9914e5aaf96b831a9e24"


@pytest.fixture
def five_files(tmp_path, make_descriptor):
    """A..E on disk, C and D with identical content."""
    contents = {"a.jpg": b"aaa", "b.jpg": b"bbb", "c.jpg": b"same", "d.jpg": b"same", "e.pdf": b"eee"}
    files = []
    for name, data in contents.items():
        path = tmp_path / name
        path.write_bytes(data)
        if name.endswith(".pdf"):
            descriptor = make_descriptor(
                name, size=len(data), mime_type="application/pdf", media_type=MediaType.DOCUMENT, path=path
            )
        else:
            descriptor = make_descriptor(name, size=len(data), path=path)
        files.append(TrackedFile(descriptor))
    return files


@pytest.mark.asyncio
async def test_duplicate_marked_skipped(five_files):
    report = await DuplicateDetector().detect(five_files)

    by_name = {f.name: f for f in five_files}
    assert report.hashed == 5
    assert report.duplicates == ["d.jpg"]
    assert by_name["d.jpg"].status is UploadStatus.SKIPPED
    assert by_name["d.jpg"].upload_error == "Duplicate of c.jpg"
    assert by_name["c.jpg"].status is UploadStatus.PENDING
    assert sum(1 for f in five_files if f.status is UploadStatus.PENDING) == 4


@pytest.mark.asyncio
async def test_detection_is_idempotent(five_files):
    detector = DuplicateDetector()
    await detector.detect(five_files)
    before = [(f.status, f.upload_error, f.content_hash) for f in five_files]

    report = await detector.detect(five_files)

    assert report.changed is False
    assert [(f.status, f.upload_error, f.content_hash) for f in five_files] == before


@pytest.mark.asyncio
async def test_uploaded_member_is_kept(five_files):
    by_name = {f.name: f for f in five_files}
    by_name["d.jpg"].status = UploadStatus.UPLOADED

    await DuplicateDetector().detect(five_files)

    assert by_name["d.jpg"].status is UploadStatus.UPLOADED
    assert by_name["c.jpg"].status is UploadStatus.SKIPPED
    assert by_name["c.jpg"].upload_error == "Duplicate of d.jpg"


@pytest.mark.asyncio
async def test_at_most_one_survivor_per_group(tmp_path, make_descriptor):
    files = []
    for i in range(4):
        path = tmp_path / f"copy{i}.jpg"
        path.write_bytes(b"identical")
        files.append(TrackedFile(make_descriptor(path.name, path=path)))

    await DuplicateDetector().detect(files)

    assert [f.status for f in files].count(UploadStatus.PENDING) == 1
    assert files[0].status is UploadStatus.PENDING


@pytest.mark.asyncio
async def test_missing_file_not_hashed(make_descriptor):
    tracked = TrackedFile(make_descriptor("gone.jpg"), status=UploadStatus.FAILED)
    hasher = AsyncMock(return_value="abc")

    report = await DuplicateDetector(hasher=hasher).detect([tracked])

    hasher.assert_not_called()
    assert report.hashed == 0
    assert tracked.content_hash is None
    assert tracked.status is UploadStatus.FAILED


@pytest.mark.asyncio
async def test_preserved_hash_counts_for_grouping(tmp_path, make_descriptor):
    # The first file is gone locally but its hash survived in the store
    gone = TrackedFile(make_descriptor("old.jpg"), status=UploadStatus.UPLOADED, content_hash="h1")
    path = tmp_path / "new.jpg"
    path.write_bytes(b"x")
    fresh = TrackedFile(make_descriptor("new.jpg", path=path))

    await DuplicateDetector(hasher=AsyncMock(return_value="h1")).detect([gone, fresh])

    assert fresh.status is UploadStatus.SKIPPED
    assert fresh.upload_error == "Duplicate of old.jpg"


@pytest.mark.asyncio
async def test_hash_error_leaves_file_untouched(tmp_path, make_descriptor, caplog):
    path = tmp_path / "locked.jpg"
    path.write_bytes(b"x")
    tracked = TrackedFile(make_descriptor("locked.jpg", path=path))

    report = await DuplicateDetector(hasher=AsyncMock(side_effect=PermissionError("denied"))).detect([tracked])

    assert report.hash_errors == 1
    assert tracked.content_hash is None
    assert tracked.status is UploadStatus.PENDING
    assert "Hash failed" in caplog.text
