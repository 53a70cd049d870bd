"""Client for the cloud document-transform service.

The wire protocol follows the Adobe PDF Services REST API: exchange client
credentials for a token, register an asset and upload the input to the
returned URI, submit an operation, poll its status URL and finally download
the result asset. Every call returns a ``TransformResult`` instead of raising,
so tiers can decide how to fall back.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import anyio
import httpx
import structlog

from docpipe.lib.exceptions import StorageError

if TYPE_CHECKING:
    from docpipe.config.base import CloudSettings
    from docpipe.domain.conversions.storage import ObjectStorage

logger = structlog.get_logger()

PDF_MEDIA_TYPE = "application/pdf"


class TransformFailureReason(str, enum.Enum):
    UNCONFIGURED = "Unconfigured"
    QUOTA_EXCEEDED = "QuotaExceeded"
    INVALID_INPUT = "InvalidInput"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"

    @property
    def retryable(self) -> bool:
        return self in (TransformFailureReason.TIMEOUT, TransformFailureReason.UNKNOWN)


@dataclass(frozen=True)
class TransformParams:
    operation: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransformSuccess:
    asset_ref: str


@dataclass(frozen=True)
class TransformFailure:
    reason: TransformFailureReason
    message: str


TransformResult = TransformSuccess | TransformFailure


@dataclass(frozen=True)
class CloudCredentials:
    client_id: str
    client_secret: str
    organization_id: str = ""


def export_docx_params(ocr_lang: str = "en-US") -> TransformParams:
    return TransformParams("exportpdf", {"targetFormat": "docx", "ocrLang": ocr_lang})


def compress_pdf_params(level: str) -> TransformParams:
    return TransformParams("compresspdf", {"compressionLevel": level.upper()})


def load_credentials(settings: CloudSettings) -> CloudCredentials | None:
    """Credentials from settings, else from a PDF Services credentials file."""
    if settings.CLIENT_ID and settings.CLIENT_SECRET:
        return CloudCredentials(settings.CLIENT_ID, settings.CLIENT_SECRET, settings.ORGANIZATION_ID)

    path = Path(settings.CREDENTIALS_FILE)
    if not path.is_file():
        logger.warning("Cloud credentials not found", credentials_file=str(path))
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        client = data["client_credentials"]
        return CloudCredentials(
            client_id=client["client_id"],
            client_secret=client["client_secret"],
            organization_id=data.get("service_principal_credentials", {}).get("organization_id", ""),
        )
    except (OSError, ValueError, KeyError, TypeError):
        logger.exception("Invalid cloud credentials file", credentials_file=str(path))
        return None


class _CloudRequestError(Exception):
    def __init__(self, reason: TransformFailureReason, message: str) -> None:
        self.reason = reason
        super().__init__(message)


def _failure_reason(status_code: int) -> TransformFailureReason:
    if status_code in (401, 403):
        return TransformFailureReason.UNCONFIGURED
    if status_code == 429:
        return TransformFailureReason.QUOTA_EXCEEDED
    if status_code in (400, 413, 415, 422):
        return TransformFailureReason.INVALID_INPUT
    if status_code in (408, 504):
        return TransformFailureReason.TIMEOUT
    return TransformFailureReason.UNKNOWN


def _check(response: httpx.Response) -> httpx.Response:
    if response.is_error:
        raise _CloudRequestError(
            _failure_reason(response.status_code),
            f"{response.request.method} {response.request.url.path} returned {response.status_code}: {response.text[:200]}",
        )
    return response


class CloudTransformClient:
    def __init__(
        self,
        settings: CloudSettings,
        storage: ObjectStorage,
        *,
        credentials: CloudCredentials | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.credentials = credentials if credentials is not None else load_credentials(settings)
        self._client = httpx.AsyncClient(
            base_url=settings.BASE_URL,
            timeout=settings.TIMEOUT,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return self.credentials is not None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def transform(self, input_ref: str, params: TransformParams, output_name: str) -> TransformResult:
        credentials = self.credentials
        if credentials is None:
            return TransformFailure(TransformFailureReason.UNCONFIGURED, "Cloud transform credentials are not configured")
        try:
            with anyio.fail_after(self.settings.TIMEOUT):
                content = await anyio.to_thread.run_sync(self.storage.read_bytes, input_ref)
                result = await self._run(credentials, content, params)
        except TimeoutError:
            return TransformFailure(TransformFailureReason.TIMEOUT, f"{params.operation} timed out after {self.settings.TIMEOUT}s")
        except httpx.TimeoutException as err:
            return TransformFailure(TransformFailureReason.TIMEOUT, f"{params.operation} timed out: {err}")
        except _CloudRequestError as err:
            return TransformFailure(err.reason, str(err))
        except (httpx.HTTPError, ValueError, KeyError) as err:
            return TransformFailure(TransformFailureReason.UNKNOWN, f"{params.operation} failed: {err}")
        except StorageError as err:
            return TransformFailure(TransformFailureReason.INVALID_INPUT, str(err))

        asset_ref = await anyio.to_thread.run_sync(self.storage.save_output, output_name, result)
        logger.info("Cloud transform completed", operation=params.operation, asset_ref=asset_ref, size=len(result))
        return TransformSuccess(asset_ref)

    async def _run(self, credentials: CloudCredentials, content: bytes, params: TransformParams) -> bytes:
        headers = await self._auth_headers(credentials)

        asset = _check(
            await self._client.post("/assets", json={"mediaType": PDF_MEDIA_TYPE}, headers=headers)
        ).json()
        _check(
            await self._client.put(asset["uploadUri"], content=content, headers={"Content-Type": PDF_MEDIA_TYPE})
        )

        submitted = _check(
            await self._client.post(
                f"/operation/{params.operation}",
                json={"assetID": asset["assetID"], **params.payload},
                headers=headers,
            )
        )
        status_url = submitted.headers["location"]
        logger.info("Cloud job submitted", operation=params.operation, status_url=status_url)

        while True:
            status = _check(await self._client.get(status_url, headers=headers)).json()
            state = status.get("status")
            if state == "done":
                download_uri = status["asset"]["downloadUri"]
                break
            if state == "failed":
                error = status.get("error") or {}
                raise _CloudRequestError(
                    _failure_reason(int(error.get("status", 500))),
                    error.get("message", f"{params.operation} failed"),
                )
            await anyio.sleep(self.settings.POLL_INTERVAL)

        return _check(await self._client.get(download_uri)).content

    async def _auth_headers(self, credentials: CloudCredentials) -> dict[str, str]:
        response = _check(
            await self._client.post(
                self.settings.TOKEN_PATH,
                data={
                    "client_id": credentials.client_id,
                    "client_secret": credentials.client_secret,
                },
            )
        )
        token = response.json()["access_token"]
        return {"Authorization": f"Bearer {token}", "X-API-Key": credentials.client_id}
