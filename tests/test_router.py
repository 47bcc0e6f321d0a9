"""Tests for TransferRouter."""
import pytest

from wauploader.config import MB, UploadConfig
from wauploader.errors import TransferError
from wauploader.models import ChannelState, ContainerRef, Destination, MediaType, TrackedFile
from wauploader.services.router import DRIVE_FILE_LINK, TransferMode, TransferRouter, album_title, chunked


def _document(make_descriptor, name, size):
    return make_descriptor(name, size=size, mime_type="application/pdf", media_type=MediaType.DOCUMENT)


class TestRouting:
    def test_destination_and_mode(self, make_descriptor, media_library, blob_store):
        router = TransferRouter(media_library, blob_store)
        photo = TrackedFile(make_descriptor("a.jpg"))
        video = TrackedFile(make_descriptor("b.mp4", mime_type="video/mp4", media_type=MediaType.VIDEO))
        small = TrackedFile(_document(make_descriptor, "c.pdf", 1 * MB))
        large = TrackedFile(_document(make_descriptor, "d.pdf", 10 * MB))
        threshold = TrackedFile(_document(make_descriptor, "e.pdf", 5 * MB))

        assert router.destination_for(photo) is Destination.MEDIA_LIBRARY
        assert router.destination_for(video) is Destination.MEDIA_LIBRARY
        assert router.destination_for(small) is Destination.BLOB_STORE
        assert router.mode_for(photo) is TransferMode.MEDIA_TWO_PHASE
        assert router.mode_for(small) is TransferMode.SINGLE_SHOT
        assert router.mode_for(large) is TransferMode.RESUMABLE
        assert router.mode_for(threshold) is TransferMode.RESUMABLE


class TestTransfer:
    @pytest.mark.asyncio
    async def test_large_document_uses_resumable(self, make_descriptor, media_library, blob_store):
        tracked = TrackedFile(_document(make_descriptor, "report.pdf", 10 * MB))
        channel = ChannelState("chat-1", "Family", [tracked])
        router = TransferRouter(media_library, blob_store)
        progress = []

        outcome = await router.transfer(tracked, channel, progress_callback=lambda s, t: progress.append((s, t)))

        blob_store.create_resumable.assert_awaited_once()
        blob_store.create.assert_not_called()
        metadata, path, callback = blob_store.create_resumable.call_args.args
        assert metadata == {"name": "report.pdf", "mimeType": "application/pdf", "parents": ["folder-1"]}
        assert callback is not None
        assert outcome.destination is Destination.BLOB_STORE
        assert outcome.remote_link == "https://drive.google.com/file/d/big/view"

    @pytest.mark.asyncio
    async def test_small_document_single_shot(self, make_descriptor, media_library, blob_store):
        tracked = TrackedFile(_document(make_descriptor, "note.pdf", 1024))
        channel = ChannelState("chat-1", "Family", [tracked])
        progress = []

        outcome = await TransferRouter(media_library, blob_store).transfer(
            tracked, channel, progress_callback=lambda s, t: progress.append((s, t))
        )

        blob_store.create.assert_awaited_once()
        blob_store.create_resumable.assert_not_called()
        assert outcome.remote_link == DRIVE_FILE_LINK.format(id=outcome.remote_id)
        assert progress == [(0, 1024), (1024, 1024)]

    @pytest.mark.asyncio
    async def test_container_created_once_and_reused(self, make_descriptor, media_library, blob_store):
        first = TrackedFile(make_descriptor("a.jpg"))
        second = TrackedFile(make_descriptor("b.jpg"))
        channel = ChannelState("chat-1", "Family", [first, second])
        router = TransferRouter(media_library, blob_store)

        outcome1 = await router.transfer(first, channel, on_container_created=channel.cache_container)
        outcome2 = await router.transfer(second, channel, on_container_created=channel.cache_container)

        media_library.create_container.assert_awaited_once_with("Family")
        assert outcome1.created_container == ContainerRef("album-1", "Family")
        assert outcome2.created_container is None
        assert channel.container_for(Destination.MEDIA_LIBRARY).id == "album-1"
        for call in media_library.add_items_to_container.call_args_list:
            assert call.args[0] == "album-1"

    @pytest.mark.asyncio
    async def test_container_kept_when_transfer_fails_after_creation(
        self, make_descriptor, media_library, blob_store
    ):
        tracked = TrackedFile(make_descriptor("a.jpg"))
        channel = ChannelState("chat-1", "Family", [tracked])
        media_library.create_item.side_effect = TransferError("Backend Error", code=500)

        with pytest.raises(TransferError):
            await TransferRouter(media_library, blob_store).transfer(
                tracked, channel, on_container_created=channel.cache_container
            )

        assert channel.container_for(Destination.MEDIA_LIBRARY) == ContainerRef("album-1", "Family")

    @pytest.mark.asyncio
    async def test_album_add_failure_retries_membership_only(self, make_descriptor, media_library, blob_store):
        tracked = TrackedFile(make_descriptor("a.jpg"))
        channel = ChannelState("chat-1", "Family", [tracked])
        media_library.add_items_to_container.side_effect = [
            TransferError("Backend Error", code=503),
            ["item-1"],
        ]
        router = TransferRouter(media_library, blob_store)

        with pytest.raises(TransferError):
            await router.transfer(tracked, channel, on_container_created=channel.cache_container)
        outcome = await router.transfer(tracked, channel, on_container_created=channel.cache_container)

        media_library.upload_bytes.assert_awaited_once()
        media_library.create_item.assert_awaited_once()
        assert media_library.add_items_to_container.await_count == 2
        assert outcome.remote_id == "item-1"

        # a later file goes through both phases again
        other = TrackedFile(make_descriptor("b.jpg"))
        channel.files.append(other)
        media_library.add_items_to_container.side_effect = lambda album_id, ids: list(ids)
        await router.transfer(other, channel)
        assert media_library.create_item.await_count == 2

    @pytest.mark.asyncio
    async def test_media_two_phase(self, make_descriptor, media_library, blob_store):
        tracked = TrackedFile(make_descriptor("a.jpg"))
        channel = ChannelState(
            "chat-1", "Family", [tracked], containers={Destination.MEDIA_LIBRARY: ContainerRef("album-7", "Family")}
        )

        outcome = await TransferRouter(media_library, blob_store).transfer(tracked, channel)

        media_library.create_container.assert_not_called()
        media_library.upload_bytes.assert_awaited_once_with(tracked.path, "image/jpeg")
        token, metadata = media_library.create_item.call_args.args
        assert token == "upload-token"
        assert metadata["filename"] == "a.jpg"
        media_library.add_items_to_container.assert_awaited_once_with("album-7", [outcome.remote_id])
        assert outcome.remote_link.endswith("a.jpg")

    @pytest.mark.asyncio
    async def test_folder_under_configured_parent(self, make_descriptor, media_library, blob_store):
        tracked = TrackedFile(_document(make_descriptor, "note.pdf", 10))
        channel = ChannelState("chat-1", "<b>Work</b> ", [tracked])
        config = UploadConfig(drive_parent_folder_id="root-folder")

        await TransferRouter(media_library, blob_store, config).transfer(tracked, channel)

        blob_store.create_container.assert_awaited_once_with("Work", "root-folder")


class TestAlbumHelpers:
    @pytest.mark.asyncio
    async def test_add_to_album_batches(self, media_library, blob_store):
        router = TransferRouter(media_library, blob_store)
        ids = [f"item-{i}" for i in range(120)]

        added = await router.add_to_album("album-1", ids)

        sizes = [len(call.args[1]) for call in media_library.add_items_to_container.call_args_list]
        assert sizes == [50, 50, 20]
        assert added == ids

    def test_album_title(self):
        assert album_title("  <b>Family</b> ") == "Family"
        with pytest.raises(ValueError, match="empty"):
            album_title("<i></i>")
        with pytest.raises(ValueError, match="too long"):
            album_title("x" * 501)

    def test_chunked(self):
        assert chunked(["a", "b", "c"], 2) == [["a", "b"], ["c"]]
        assert chunked([], 2) == []
