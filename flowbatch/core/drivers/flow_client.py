"""
Flow (aisandbox) API client

Direct HTTP calls to the generation backend with a browser-like TLS
fingerprint (curl_cffi impersonate="chrome"). Tokens come from the
token broker; this client never touches the browser.
"""
import json
import logging
import re
import time
from typing import Optional, Dict, Any, List

from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession

from .abstractions import GenerationClient
from ..domain.job import NO_MEDIA_URL, Operation, OperationStatus
from ..exceptions import SubmissionRejected, PollTimeoutOrNetworkError, UploadError

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "MEDIA_GENERATION_STATUS_ACTIVE"

IMAGE_ASPECT_RATIOS = {
    "16:9": "IMAGE_ASPECT_RATIO_LANDSCAPE",
    "9:16": "IMAGE_ASPECT_RATIO_PORTRAIT",
}


def _extract_error(resp) -> str:
    """Pull error.message out of a JSON error body, fall back to raw text"""
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text[:300]}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return f"HTTP {resp.status_code}: {error['message']}"
    return f"HTTP {resp.status_code}: {resp.text[:300]}"


def parse_operation(entry: Dict[str, Any]) -> Operation:
    """
    Convert one entry of the "operations" array into an Operation

    Media URL lives at operation.metadata.video.fifeUrl, failure reason
    at operation.metadata.error.message (or operation.error.message).
    """
    op = entry.get("operation") or {}
    metadata = op.get("metadata") or {}
    status = OperationStatus.from_remote(entry.get("status"))

    media_url = None
    error = None
    if status == OperationStatus.SUCCESSFUL:
        video = metadata.get("video") or {}
        media_url = video.get("fifeUrl") or video.get("servingBaseUri")
        if not media_url:
            status = OperationStatus.FAILED
            error = NO_MEDIA_URL
    elif status == OperationStatus.FAILED:
        err = metadata.get("error") or op.get("error") or {}
        error = err.get("message") or "Generation failed"

    return Operation(
        operation_name=op.get("name") or "",
        scene_id=entry.get("sceneId") or "",
        status=status,
        media_url=media_url,
        error=error,
    )


class FlowApiClient(GenerationClient):
    def __init__(
        self,
        api_base_url: str = "https://aisandbox-pa.googleapis.com/v1",
        session_endpoint: str = "https://labs.google/fx/api/auth/session",
        timeout: float = 60.0
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.session_endpoint = session_endpoint
        self.timeout = timeout

    def _headers(self, auth_token: str) -> Dict[str, str]:
        token = auth_token if auth_token.startswith("Bearer ") else f"Bearer {auth_token}"
        return {
            "Content-Type": "text/plain;charset=UTF-8",
            "Authorization": token,
            "Origin": "https://labs.google",
            "Referer": "https://labs.google/",
        }

    async def _post(self, path: str, body: Dict[str, Any], auth_token: str, timeout: Optional[float] = None):
        async with AsyncSession(impersonate="chrome") as http:
            return await http.post(
                f"{self.api_base_url}{path}",
                headers=self._headers(auth_token),
                data=json.dumps(body),
                timeout=timeout or self.timeout,
            )

    async def submit(
        self,
        body: Dict[str, Any],
        auth_token: str,
        image_to_video: bool = False
    ) -> List[Operation]:
        endpoint = (
            "/video:batchAsyncGenerateVideoStartImage"
            if image_to_video
            else "/video:batchAsyncGenerateVideoText"
        )
        try:
            resp = await self._post(endpoint, body, auth_token)
        except CurlError as e:
            raise SubmissionRejected(f"Network error: {e}") from e

        if resp.status_code != 200:
            raise SubmissionRejected(_extract_error(resp))

        entries = resp.json().get("operations") or []
        operations = [parse_operation(entry) for entry in entries]
        operations = [op for op in operations if op.operation_name and op.scene_id]
        if not operations:
            raise SubmissionRejected("No operations returned")

        logger.info(f"[SUBMIT] Remote accepted {len(operations)} operation(s)")
        return operations

    async def check_status(
        self,
        operations: List[Operation],
        auth_token: str
    ) -> List[Operation]:
        body = {
            "operations": [
                {
                    "operation": {"name": op.operation_name},
                    "sceneId": op.scene_id,
                    "status": STATUS_ACTIVE,
                }
                for op in operations
            ]
        }
        try:
            resp = await self._post("/video:batchCheckAsyncVideoGenerationStatus", body, auth_token)
        except CurlError as e:
            raise PollTimeoutOrNetworkError(str(e)) from e

        if resp.status_code != 200:
            raise PollTimeoutOrNetworkError(_extract_error(resp))

        return [parse_operation(entry) for entry in resp.json().get("operations") or []]

    async def upload_image(
        self,
        data_url: str,
        aspect_ratio: str,
        auth_token: str
    ) -> str:
        match = re.match(r"^data:(image/[\w.+-]+);base64,(.+)$", data_url or "", re.DOTALL)
        if not match:
            raise UploadError("Image must be a base64 data URL")
        mime_type, raw_bytes = match.group(1), match.group(2)

        body = {
            "imageInput": {
                "rawImageBytes": raw_bytes,
                "mimeType": mime_type,
                "isUserUploaded": True,
                "aspectRatio": IMAGE_ASPECT_RATIOS.get(aspect_ratio, IMAGE_ASPECT_RATIOS["16:9"]),
            },
            "clientContext": {
                "sessionId": f";{int(time.time() * 1000)}",
                "tool": "ASSET_MANAGER",
            },
        }
        try:
            resp = await self._post(":uploadUserImage", body, auth_token)
        except CurlError as e:
            raise UploadError(f"Network error: {e}") from e

        if resp.status_code != 200:
            raise UploadError(_extract_error(resp))

        data = resp.json()
        media = data.get("mediaGenerationId")
        media_id = (media.get("mediaGenerationId") if isinstance(media, dict) else media) or data.get("mediaId")
        if not media_id:
            raise UploadError("Upload returned no media id")
        logger.info(f"[UPLOAD] Image uploaded: {media_id[:24]}...")
        return media_id

    async def fetch_auth_session(self, cookie: str) -> Dict[str, Any]:
        async with AsyncSession(impersonate="chrome") as http:
            resp = await http.get(
                self.session_endpoint,
                headers={"Cookie": cookie},
                timeout=self.timeout,
            )
        if resp.status_code != 200:
            return {}
        return resp.json() or {}
