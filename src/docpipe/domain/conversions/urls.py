CONVERT = "/api/convert"
JOB_DETAIL = "/api/jobs/{job_id:str}"
DOWNLOAD = "/api/download/{filename:str}"
COMPRESSION_OPTIONS = "/api/compression-options"
CLOUD_STATUS = "/api/cloud-status"
