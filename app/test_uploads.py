"""Tests de validation et d'orchestration des uploads."""

import re

import pytest

from aws_metrics import aws_metrics
from s3_service import StorageError
from uploads import (
    IncomingFile,
    UploadValidationError,
    upload_batch,
    upload_selfie,
    validate_image_file,
    validate_selfie_file,
)

MIB = 1024 * 1024


def jpeg(name="photo.jpg", size=1024):
    return IncomingFile(filename=name, content_type="image/jpeg", data=b"\xff" * size)


def test_3mb_jpeg_is_accepted(s3, s3_client, user):
    urls = upload_batch(s3, [jpeg(size=3 * MIB)], user)

    assert len(urls) == 1
    assert re.fullmatch(
        r"https://test-bucket\.s3\.amazonaws\.com/user/jane_doe_example_com/\d+-photo\.jpg", urls[0]
    )
    assert len(s3_client.objects) == 1


def test_11mb_jpeg_is_rejected_before_any_network_call(s3, s3_client, user):
    with pytest.raises(UploadValidationError, match="exceeds the 10MB size limit"):
        upload_batch(s3, [jpeg(size=11 * MIB)], user)
    assert s3_client.network_calls == 0


def test_one_invalid_file_rejects_whole_batch(s3, s3_client, user):
    files = [
        jpeg("a.jpg"),
        IncomingFile(filename="notes.txt", content_type="text/plain", data=b"hello"),
        jpeg("b.jpg"),
    ]
    with pytest.raises(UploadValidationError, match="notes.txt is not a valid image file"):
        upload_batch(s3, files, user)
    assert s3_client.network_calls == 0


def test_empty_batch_is_rejected(s3, user):
    with pytest.raises(UploadValidationError, match="at least one image"):
        upload_batch(s3, [], user)


def test_batch_upload_into_event_folder_keeps_order(s3, s3_client, user):
    files = [jpeg(f"{i}.jpg") for i in range(5)]

    urls = upload_batch(s3, files, user, event_id="1717171717171")

    assert [u.rsplit("-", 1)[-1] for u in urls] == [f"{i}.jpg" for i in range(5)]
    assert all("/user/jane_doe_example_com/1717171717171/" in u for u in urls)
    assert set(s3_client.content_types.values()) == {"image/jpeg"}


def test_worker_uploads_are_attributed_to_the_open_action(s3, user):
    aws_metrics.reset()

    with aws_metrics.action_context("upload:jane_doe_example_com"):
        upload_batch(s3, [jpeg(f"{i}.jpg") for i in range(3)], user)

    entry = aws_metrics.snapshot()["action_log"][-1]
    assert entry["counts"] == {"PutObject": 3}
    assert entry["description"] == "Upload de photos (jane_doe_example_com)"


def test_single_upload_failure_fails_batch(s3, s3_client, user):
    s3_client.fail_uploads_containing = "broken"
    files = [jpeg("ok.jpg"), jpeg("broken.jpg")]

    with pytest.raises(StorageError):
        upload_batch(s3, files, user)


@pytest.mark.parametrize("content_type", ["image/gif", "image/webp", "application/pdf"])
def test_selfie_only_accepts_jpeg_and_png(content_type):
    with pytest.raises(UploadValidationError, match="Only JPEG and PNG images are supported"):
        validate_selfie_file(IncomingFile("me", content_type, b"x"))


def test_selfie_size_limit():
    validate_selfie_file(IncomingFile("me.png", "image/png", b"x" * (5 * MIB)))
    with pytest.raises(UploadValidationError, match="Image size must be less than 5MB"):
        validate_selfie_file(IncomingFile("me.png", "image/png", b"x" * (5 * MIB + 1)))


def test_missing_selfie_is_rejected():
    with pytest.raises(UploadValidationError, match="Please select a selfie"):
        validate_selfie_file(None)


def test_image_validation_boundary():
    validate_image_file(jpeg(size=10 * MIB))
    with pytest.raises(UploadValidationError):
        validate_image_file(jpeg(size=10 * MIB + 1))


def test_upload_selfie_returns_filename_only(s3, s3_client, user):
    filename = upload_selfie(s3, IncomingFile("me.png", "image/png", b"png"), user)

    assert re.fullmatch(r"\d+-me\.png", filename)
    assert f"user/jane_doe_example_com/selfies/{filename}" in s3_client.objects
