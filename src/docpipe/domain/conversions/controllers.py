from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Annotated, Any

import anyio
import structlog
from litestar import Controller, Response, get, post
from litestar.datastructures import UploadFile
from litestar.di import Provide
from litestar.enums import RequestEncodingType
from litestar.exceptions import HTTPException, NotFoundException
from litestar.params import Body
from litestar.status_codes import HTTP_202_ACCEPTED

from docpipe.domain.conversions.context import ConversionContext
from docpipe.domain.conversions.dependencies import provide_conversion
from docpipe.domain.conversions.profiles import DEFAULT_LEVEL, compression_options
from docpipe.domain.conversions.schemas import CloudStatus, JobAccepted, JobOptions, JobRequest, JobState
from docpipe.domain.conversions.storage import ObjectStorage
from docpipe.lib.exceptions import StorageError, ValidationError

from . import urls

logger = structlog.get_logger()


@dataclass
class ConvertForm:
    file: UploadFile
    type: str
    compression_level: str = DEFAULT_LEVEL


class ConversionController(Controller):
    tags = ["Conversions"]
    dependencies = {"conversion": Provide(provide_conversion, sync_to_thread=False)}
    signature_namespace = {"ConversionContext": ConversionContext}

    @post(
        operation_id="ConvertFile",
        name="conversions:convert",
        path=urls.CONVERT,
        status_code=HTTP_202_ACCEPTED,
        cache=False,
        summary="Upload a file and queue its conversion",
        description="Use the returned job id to poll the job status.",
    )
    async def convert(
        self,
        conversion: ConversionContext,
        data: Annotated[ConvertForm, Body(media_type=RequestEncodingType.MULTI_PART)],
    ) -> JobAccepted:
        try:
            job_type = conversion.dispatcher.job_type(data.type)
        except ValidationError as err:
            raise HTTPException(detail=str(err), status_code=400) from err

        content = await data.file.read()
        max_upload_mb = conversion.settings.app.MAX_UPLOAD_MB
        if not content:
            raise HTTPException(detail="No file uploaded", status_code=400)
        if len(content) > max_upload_mb * 1024 * 1024:
            raise HTTPException(detail=f"File exceeds the {max_upload_mb} MB upload limit", status_code=400)

        filename = data.file.filename or "upload"
        input_ref = await anyio.to_thread.run_sync(conversion.storage.save_input, filename, content)
        request = JobRequest(
            type=job_type.value,
            input_ref=input_ref,
            original_name=filename,
            options=JobOptions(compression_level=data.compression_level),
        )
        try:
            job_id = await conversion.queue.submit(request)
        except ValidationError as err:
            await conversion.storage.discard(input_ref)
            raise HTTPException(detail=str(err), status_code=400) from err
        return JobAccepted(id=job_id)

    @get(
        operation_id="GetJob",
        name="conversions:job",
        path=urls.JOB_DETAIL,
        cache=False,
        summary="Job status",
        description="Status of a conversion job, with the outcome once it has completed.",
    )
    async def get_job(self, conversion: ConversionContext, job_id: str) -> JobState:
        state = await conversion.queue.status(job_id)
        if state is None:
            raise NotFoundException(detail=f"Job {job_id} is not found")
        return state

    @get(
        operation_id="DownloadOutput",
        name="conversions:download",
        path=urls.DOWNLOAD,
        summary="Download a conversion output",
    )
    async def download(self, conversion: ConversionContext, filename: str) -> Response[bytes]:
        if filename in ("", ".", "..") or posixpath.basename(filename) != filename:
            raise NotFoundException(detail=f"File {filename} is not found")
        try:
            content = await anyio.to_thread.run_sync(
                conversion.storage.read_bytes, conversion.storage.output_ref(filename)
            )
        except StorageError as err:
            raise NotFoundException(detail=f"File {filename} is not found") from err
        return Response(
            content=content,
            media_type=ObjectStorage.media_type(filename),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @get(
        operation_id="CompressionOptions",
        name="conversions:compression-options",
        path=urls.COMPRESSION_OPTIONS,
        summary="Available compression levels",
    )
    async def get_compression_options(self) -> dict[str, Any]:
        return compression_options()

    @get(
        operation_id="CloudStatus",
        name="conversions:cloud-status",
        path=urls.CLOUD_STATUS,
        summary="Cloud transform availability",
    )
    async def get_cloud_status(self, conversion: ConversionContext) -> CloudStatus:
        if conversion.cloud.configured:
            return CloudStatus(configured=True, message="Cloud transforms are enabled")
        return CloudStatus(configured=False, message="Cloud credentials missing, local fallbacks will be used")
