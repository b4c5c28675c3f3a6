"""Tests for applying a listing's image list to storage and records."""

import re

import pytest

from assets.models import AssetListState, RemoteAsset
from assets.reconciler import add_staged, promote_to_primary, remove
from assets.tiers import ListingKind, listing_tier
from exceptions import CanvasError, RecordStoreError, StorageError
from schemas import EncodedImage, SourceImage
from storage.entities import CAR_IMAGES, SPARE_PART_IMAGES
from storage.gcs import gcs_storage
from submission.listing import ListingMediaSubmitter
from conftest import FakeRecordStore, FakeStorage, make_encoded, make_image_bytes

CAR_URL = "https://storage.googleapis.com/car-images/42/{}"


async def fake_thumbnail(source: SourceImage) -> EncodedImage:
    return make_encoded(source.filename.replace(".webp", "_thumb.webp"), data=b"thumb")


async def broken_thumbnail(source: SourceImage) -> EncodedImage:
    raise CanvasError("WebP encode produced no output")


def _car_rows():
    return {
        "1": {"car_id": 42, "image_url": CAR_URL.format("a.webp"),
              "thumbnail_url": CAR_URL.format("a_thumb.webp"), "is_main": True},
        "2": {"car_id": 42, "image_url": CAR_URL.format("b.webp"),
              "thumbnail_url": CAR_URL.format("b_thumb.webp"), "is_main": False},
    }


def _state_from_rows(rows, entity=CAR_IMAGES):
    return AssetListState.from_remote([
        RemoteAsset(
            remote_id=rid,
            display_url=row[entity.url_column],
            is_primary=row[entity.flag_column],
            backing_record=row,
        )
        for rid, row in rows.items()
    ])


def _sources(*names):
    return [SourceImage(filename=n, data=f"bytes-{n}".encode()) for n in names]


@pytest.mark.asyncio
async def test_edit_car_delete_upload_and_keep_remote_primary(fake_encode):
    storage, records = FakeStorage(), FakeRecordStore(_car_rows())
    state = _state_from_rows(records.rows)
    state = await add_staged(state, _sources("new.jpg"), 10, fake_encode)
    staged = state.items[2]
    state = remove(state, 0)  # drop the old main image "1"

    submitter = ListingMediaSubmitter(storage, records, thumbnail_encode=fake_thumbnail)
    result = await submitter.submit(CAR_IMAGES, 42, state)

    assert storage.removals == [("car-images", ["42/a.webp", "42/a_thumb.webp"])]
    assert result.deleted_ids == ["1"]
    assert "1" not in records.rows

    main_upload, thumb_upload = storage.uploads
    assert main_upload[0] == "car-images"
    assert re.fullmatch(r"42/\d{13}-[a-z0-9]{6}\.webp", main_upload[1])
    assert thumb_upload[1] == main_upload[1].replace(".webp", "_thumb.webp")

    new_id = result.inserted_ids[0]
    new_row = records.rows[new_id]
    assert new_row["car_id"] == 42
    assert new_row["image_url"].endswith(main_upload[1])
    assert new_row["thumbnail_url"].endswith(thumb_upload[1])
    assert new_row["is_main"] is False

    assert result.primary_id == "2"
    assert records.rows["2"]["is_main"] is True
    assert staged.preview.released


@pytest.mark.asyncio
async def test_staged_primary_goes_to_first_upload(fake_encode):
    storage, records = FakeStorage(), FakeRecordStore(_car_rows())
    state = _state_from_rows(records.rows)
    state = await add_staged(state, _sources("x.jpg", "y.jpg"), 10, fake_encode)
    state = promote_to_primary(state, 3)  # y first, then 1, 2, x

    result = await ListingMediaSubmitter(storage, records, thumbnail_encode=fake_thumbnail).submit(
        CAR_IMAGES, 42, state
    )

    y_id, x_id = result.inserted_ids
    assert result.primary_id == y_id
    assert records.rows[y_id]["is_main"] is True
    assert records.rows[x_id]["is_main"] is False
    assert records.rows["1"]["is_main"] is False
    assert ("1", False) in records.flag_updates
    assert ("2", False) in records.flag_updates
    assert records.flag_updates[-1] == (y_id, True)


@pytest.mark.asyncio
async def test_create_flow_first_image_is_primary(fake_encode):
    storage, records = FakeStorage(), FakeRecordStore()
    state = await add_staged(AssetListState.empty(), _sources("1.jpg", "2.jpg", "3.jpg"), 10, fake_encode)

    result = await ListingMediaSubmitter(storage, records, thumbnail_encode=fake_thumbnail).submit(
        CAR_IMAGES, 42, state
    )

    assert len(result.inserted_ids) == 3
    assert result.primary_id == result.inserted_ids[0]
    assert records.flag_updates == [(result.inserted_ids[0], True)]
    main_paths = [path for _, path, _ in storage.uploads if not path.endswith("_thumb.webp")]
    urls = [records.rows[i]["image_url"] for i in result.inserted_ids]
    assert [u.split("/car-images/")[1] for u in urls] == main_paths


@pytest.mark.asyncio
async def test_failed_upload_is_skipped(fake_encode):
    storage, records = FakeStorage(), FakeRecordStore()
    state = await add_staged(AssetListState.empty(), _sources("1.jpg", "2.jpg"), 10, fake_encode)

    calls = {"n": 0}
    original_upload = storage.upload

    async def fail_first(data, path, bucket, content_type):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StorageError("upload refused", path=path)
        return await original_upload(data, path, bucket, content_type)

    storage.upload = fail_first

    result = await ListingMediaSubmitter(storage, records, thumbnail_encode=fake_thumbnail).submit(
        CAR_IMAGES, 42, state
    )

    assert result.failed_uploads == ["1.webp"]
    assert len(result.inserted_ids) == 1
    assert result.primary_id == result.inserted_ids[0]


@pytest.mark.asyncio
async def test_failed_first_upload_keeps_next_image_in_list_order_primary(fake_encode):
    rows = {"B": {"car_id": 42, "image_url": CAR_URL.format("b.webp"),
                  "thumbnail_url": CAR_URL.format("b_thumb.webp"), "is_main": True}}
    storage, records = FakeStorage(), FakeRecordStore(rows)
    state = _state_from_rows(records.rows)
    state = await add_staged(state, _sources("s1.jpg", "s2.jpg"), 10, fake_encode)
    state = promote_to_primary(state, 1)  # s1, B, s2

    original_upload = storage.upload

    async def refuse_s1(data, path, bucket, content_type):
        if data == b"bytes-s1.jpg":
            raise StorageError("upload refused", path=path)
        return await original_upload(data, path, bucket, content_type)

    storage.upload = refuse_s1

    result = await ListingMediaSubmitter(storage, records, thumbnail_encode=fake_thumbnail).submit(
        CAR_IMAGES, 42, state
    )

    assert result.failed_uploads == ["s1.webp"]
    assert result.primary_id == "B"
    assert records.flag_updates == [("B", True)]
    (s2_id,) = result.inserted_ids
    assert records.rows[s2_id]["is_main"] is False


@pytest.mark.asyncio
async def test_thumbnail_failure_falls_back_to_main_url(fake_encode):
    storage, records = FakeStorage(), FakeRecordStore()
    state = await add_staged(AssetListState.empty(), _sources("1.jpg"), 10, fake_encode)

    result = await ListingMediaSubmitter(storage, records, thumbnail_encode=broken_thumbnail).submit(
        CAR_IMAGES, 42, state
    )

    row = records.rows[result.inserted_ids[0]]
    assert row["thumbnail_url"] == row["image_url"]
    assert len(storage.uploads) == 1


@pytest.mark.asyncio
async def test_spare_parts_have_no_thumbnails_and_clean_legacy_buckets(fake_encode):
    rows = {
        "p1": {"spare_part_id": "sp", "is_primary": True,
               "url": "https://x.supabase.co/storage/v1/object/public/spare-parts/sp/old.webp"},
        "p2": {"spare_part_id": "sp", "is_primary": False,
               "url": "https://storage.googleapis.com/spare-part-images/sp/new.webp?width=400"},
    }
    storage, records = FakeStorage(), FakeRecordStore(rows)
    state = _state_from_rows(records.rows, SPARE_PART_IMAGES)
    state = remove(remove(state, 0), 0)
    state = await add_staged(state, _sources("part.jpg"), 5, fake_encode)

    result = await ListingMediaSubmitter(storage, records).submit(SPARE_PART_IMAGES, "sp", state)

    assert storage.removals == [
        ("spare-part-images", ["sp/new.webp"]),
        ("spare-parts", ["sp/old.webp"]),
    ]
    assert len(storage.uploads) == 1
    row = records.rows[result.inserted_ids[0]]
    assert set(row) == {"spare_part_id", "url", "is_primary"}
    assert row["is_primary"] is True


@pytest.mark.asyncio
async def test_nothing_to_do():
    storage, records = FakeStorage(), FakeRecordStore()

    result = await ListingMediaSubmitter(storage, records).submit(CAR_IMAGES, 42, AssetListState.empty())

    assert result.primary_id is None
    assert storage.uploads == [] and storage.removals == []
    assert records.flag_updates == []


@pytest.mark.asyncio
async def test_record_store_error_keeps_previews(fake_encode):
    class BrokenRecords(FakeRecordStore):
        async def insert_asset_records(self, entity, records):
            raise RecordStoreError("Record store returned HTTP 503", http_status=503)

    state = await add_staged(AssetListState.empty(), _sources("1.jpg"), 10, fake_encode)

    with pytest.raises(RecordStoreError):
        await ListingMediaSubmitter(FakeStorage(), BrokenRecords(), thumbnail_encode=fake_thumbnail).submit(
            CAR_IMAGES, 42, state
        )

    assert not state.items[0].preview.released


@pytest.mark.asyncio
async def test_upload_dealer_logo():
    storage = FakeStorage()

    async def fake_logo(source):
        return make_encoded("logo_thumb.webp", data=b"small logo")

    submitter = ListingMediaSubmitter(storage, FakeRecordStore(), logo_encode=fake_logo)
    url = await submitter.upload_dealer_logo(SourceImage(filename="logo.png", data=b"png"))

    bucket, path, content_type = storage.uploads[0]
    assert bucket == "showroom-logos"
    assert re.fullmatch(r"logo-\d{13}-[a-z0-9]{6}\.webp", path)
    assert content_type == "image/webp"
    assert url == f"https://storage.googleapis.com/showroom-logos/{path}"


@pytest.mark.asyncio
async def test_real_encode_end_to_end():
    tier = listing_tier(ListingKind.CAR)
    files = [
        SourceImage(filename="front.jpg", data=make_image_bytes(size=(1600, 1200), fmt="JPEG")),
        SourceImage(filename="side.png", data=make_image_bytes(size=(640, 480))),
    ]
    storage, records = FakeStorage(), FakeRecordStore()

    state = await add_staged(AssetListState.empty(), files, tier.max_images, tier.encode)
    result = await ListingMediaSubmitter(storage, records).submit(CAR_IMAGES, 7, state)

    assert [img.image.width for img in state.items] == [1280, 640]
    assert len(storage.uploads) == 4
    assert all(content_type == "image/webp" for _, _, content_type in storage.uploads)
    assert result.primary_id == result.inserted_ids[0]


def test_submitter_defaults_to_gcs_storage():
    submitter = ListingMediaSubmitter(None, FakeRecordStore())
    assert submitter.storage is gcs_storage
