from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx
import pytest

from docpipe.domain.conversions.cloud import (
    CloudCredentials,
    CloudTransformClient,
    TransformFailure,
    TransformFailureReason,
    TransformSuccess,
    compress_pdf_params,
    export_docx_params,
    load_credentials,
)

if TYPE_CHECKING:
    from pathlib import Path

    from docpipe.config.base import Settings
    from docpipe.domain.conversions.storage import ObjectStorage

pytestmark = pytest.mark.anyio

STATUS_URL = "https://pdf-services-ue1.adobe.io/operation/exportpdf/job-1/status"


class FakeService:
    """In-memory stand-in for the PDF Services endpoints."""

    def __init__(self, *, final_status: dict | None = None, token_status: int = 200) -> None:
        self.final_status = final_status or {"status": "done", "asset": {"downloadUri": "https://download.example/out"}}
        self.token_status = token_status
        self.requests: list[httpx.Request] = []
        self.polls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/token":
            return httpx.Response(self.token_status, json={"access_token": "tok"})
        if path == "/assets":
            return httpx.Response(200, json={"uploadUri": "https://upload.example/asset-1", "assetID": "asset-1"})
        if request.url.host == "upload.example":
            return httpx.Response(200)
        if path.startswith("/operation/") and request.method == "POST":
            return httpx.Response(201, headers={"location": STATUS_URL})
        if path.endswith("/status"):
            self.polls += 1
            if self.polls == 1:
                return httpx.Response(200, json={"status": "in progress"})
            return httpx.Response(200, json=self.final_status)
        if request.url.host == "download.example":
            return httpx.Response(200, content=b"converted-bytes")
        return httpx.Response(404)


@pytest.fixture(name="input_ref")
def fx_input_ref(storage: ObjectStorage) -> str:
    return storage.save_input("report.pdf", b"%PDF-1.4 fake")


def _client(settings: Settings, storage: ObjectStorage, service: FakeService) -> CloudTransformClient:
    return CloudTransformClient(
        settings.cloud,
        storage,
        credentials=CloudCredentials("client-id", "client-secret"),
        transport=httpx.MockTransport(service),
    )


async def test_transform_round_trip(settings: Settings, storage: ObjectStorage, input_ref: str) -> None:
    service = FakeService()
    client = _client(settings, storage, service)
    try:
        result = await client.transform(input_ref, export_docx_params(), "converted.docx")
    finally:
        await client.aclose()

    assert isinstance(result, TransformSuccess)
    assert result.asset_ref.endswith("_converted.docx")
    assert storage.read_bytes(result.asset_ref) == b"converted-bytes"
    assert service.polls == 2

    submit = next(r for r in service.requests if r.url.path == "/operation/exportpdf")
    assert submit.headers["Authorization"] == "Bearer tok"
    assert submit.headers["X-API-Key"] == "client-id"
    assert json.loads(submit.content) == {"assetID": "asset-1", "targetFormat": "docx", "ocrLang": "en-US"}
    upload = next(r for r in service.requests if r.url.host == "upload.example")
    assert upload.content == b"%PDF-1.4 fake"


async def test_unconfigured_short_circuits(settings: Settings, storage: ObjectStorage, input_ref: str) -> None:
    service = FakeService()
    client = CloudTransformClient(settings.cloud, storage, transport=httpx.MockTransport(service))
    try:
        assert not client.configured
        result = await client.transform(input_ref, export_docx_params(), "converted.docx")
    finally:
        await client.aclose()
    assert result == TransformFailure(TransformFailureReason.UNCONFIGURED, "Cloud transform credentials are not configured")
    assert service.requests == []


async def test_rejected_credentials(settings: Settings, storage: ObjectStorage, input_ref: str) -> None:
    client = _client(settings, storage, FakeService(token_status=401))
    try:
        result = await client.transform(input_ref, export_docx_params(), "converted.docx")
    finally:
        await client.aclose()
    assert isinstance(result, TransformFailure)
    assert result.reason is TransformFailureReason.UNCONFIGURED


async def test_failed_operation_maps_status(settings: Settings, storage: ObjectStorage, input_ref: str) -> None:
    service = FakeService(final_status={"status": "failed", "error": {"status": 429, "message": "Quota exhausted"}})
    client = _client(settings, storage, service)
    try:
        result = await client.transform(input_ref, compress_pdf_params("high"), "compressed.pdf")
    finally:
        await client.aclose()
    assert result == TransformFailure(TransformFailureReason.QUOTA_EXCEEDED, "Quota exhausted")


async def test_transport_timeout(settings: Settings, storage: ObjectStorage, input_ref: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = CloudTransformClient(
        settings.cloud,
        storage,
        credentials=CloudCredentials("client-id", "client-secret"),
        transport=httpx.MockTransport(handler),
    )
    try:
        result = await client.transform(input_ref, export_docx_params(), "converted.docx")
    finally:
        await client.aclose()
    assert isinstance(result, TransformFailure)
    assert result.reason is TransformFailureReason.TIMEOUT
    assert result.reason.retryable


async def test_missing_input(settings: Settings, storage: ObjectStorage) -> None:
    client = _client(settings, storage, FakeService())
    try:
        result = await client.transform(storage.output_ref("nope.pdf"), export_docx_params(), "converted.docx")
    finally:
        await client.aclose()
    assert isinstance(result, TransformFailure)
    assert result.reason is TransformFailureReason.INVALID_INPUT
    assert not result.reason.retryable


def test_compress_params_upper_case() -> None:
    assert compress_pdf_params("medium").payload == {"compressionLevel": "MEDIUM"}


def test_credentials_from_file(settings: Settings, tmp_path: Path) -> None:
    path = tmp_path / "pdfservices-api-credentials.json"
    path.write_text(
        json.dumps(
            {
                "client_credentials": {"client_id": "abc", "client_secret": "xyz"},
                "service_principal_credentials": {"organization_id": "org@AdobeOrg"},
            }
        )
    )
    cloud_settings = settings.cloud.model_copy(update={"CREDENTIALS_FILE": str(path)})
    assert load_credentials(cloud_settings) == CloudCredentials("abc", "xyz", "org@AdobeOrg")


def test_credentials_from_settings_win(settings: Settings) -> None:
    cloud_settings = settings.cloud.model_copy(update={"CLIENT_ID": "id", "CLIENT_SECRET": "secret"})
    assert load_credentials(cloud_settings) == CloudCredentials("id", "secret", "")


def test_invalid_credentials_file(settings: Settings, tmp_path: Path) -> None:
    path = tmp_path / "creds.json"
    path.write_text("{not json")
    assert load_credentials(settings.cloud.model_copy(update={"CREDENTIALS_FILE": str(path)})) is None
