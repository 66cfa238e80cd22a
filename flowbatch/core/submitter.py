"""
Job Submitter

Builds the batch generation request from a job's payload and the brokered
tokens, sends it, and returns one PENDING Operation per requested variant.
Submission failures are not retried here; "reset" is the user's retry.
"""
import logging
import random
import time
import uuid
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Tuple

from .domain.account import Account
from .domain.job import Job, Operation, OperationStatus, VideoType
from .drivers.abstractions import GenerationClient
from .token_broker import BrokeredTokens

logger = logging.getLogger(__name__)

VIDEO_ASPECT_RATIOS = {
    "16:9": "VIDEO_ASPECT_RATIO_LANDSCAPE",
    "9:16": "VIDEO_ASPECT_RATIO_PORTRAIT",
}


@dataclass(frozen=True)
class MediaInputs:
    """Uploaded media ids for image-to-video jobs"""
    start_media_id: Optional[str] = None
    end_media_id: Optional[str] = None


class JobSubmitter:
    def __init__(
        self,
        client: GenerationClient,
        video_model: str = "veo_3_1_t2v_fast_ultra",
        paygate_tier: str = "PAYGATE_TIER_TWO"
    ):
        self.client = client
        self.video_model = video_model
        self.paygate_tier = paygate_tier

    def resolve_model(self, job: Job) -> str:
        model = job.payload.model_key or self.video_model
        if job.payload.is_portrait() and "portrait" not in model:
            model = model.replace("fast_ultra", "fast_portrait_ultra")
        if job.payload.video_type == VideoType.IMAGE_TO_VIDEO:
            model = model.replace("t2v", "i2v_s")
        return model

    def build_request(
        self,
        job: Job,
        tokens: BrokeredTokens,
        media: Optional[MediaInputs] = None
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Returns:
            (request body, is image-to-video)
        """
        payload = job.payload
        image_to_video = payload.video_type == VideoType.IMAGE_TO_VIDEO
        model = self.resolve_model(job)

        requests = []
        for _ in range(payload.count):
            request = {
                "aspectRatio": VIDEO_ASPECT_RATIOS[payload.aspect_ratio],
                "seed": random.randint(1, 99999),
                "textInput": {"prompt": payload.prompt.strip()},
                "videoModelKey": model,
                "metadata": {"sceneId": str(uuid.uuid4())},
            }
            if media and media.start_media_id:
                request["startImage"] = {"mediaId": media.start_media_id}
            if media and media.end_media_id:
                request["endImage"] = {"mediaId": media.end_media_id}
            requests.append(request)

        body = {
            "clientContext": {
                "recaptchaContext": {
                    "token": tokens.challenge_token,
                    "applicationType": "RECAPTCHA_APPLICATION_TYPE_WEB",
                },
                "sessionId": f";{int(time.time() * 1000)}",
                "projectId": str(uuid.uuid4()),
                "tool": "PINHOLE",
                "userPaygateTier": self.paygate_tier,
            },
            "requests": requests,
        }
        return body, image_to_video

    async def upload_media(self, job: Job, tokens: BrokeredTokens) -> MediaInputs:
        """
        Upload start/end images

        Raises:
            UploadError: Upload refused
        """
        start_id = None
        end_id = None
        if job.payload.start_image:
            start_id = await self.client.upload_image(
                job.payload.start_image, job.payload.aspect_ratio, tokens.auth_token
            )
        if job.payload.end_image:
            end_id = await self.client.upload_image(
                job.payload.end_image, job.payload.aspect_ratio, tokens.auth_token
            )
        return MediaInputs(start_media_id=start_id, end_media_id=end_id)

    async def submit(
        self,
        job: Job,
        account: Account,
        tokens: BrokeredTokens,
        media: Optional[MediaInputs] = None
    ) -> List[Operation]:
        """
        Send the generation request

        Raises:
            SubmissionRejected: Remote refusal (message carries the remote error)
        """
        body, image_to_video = self.build_request(job, tokens, media)
        logger.info(
            f"[SUBMIT] {job} via {account.email}: {job.payload.count} variant(s), "
            f"model={body['requests'][0]['videoModelKey']}"
        )
        operations = await self.client.submit(body, tokens.auth_token, image_to_video=image_to_video)
        return [
            Operation(operation_name=op.operation_name, scene_id=op.scene_id, status=OperationStatus.PENDING)
            for op in operations
        ]
