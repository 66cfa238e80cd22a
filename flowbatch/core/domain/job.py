"""
Job Domain Models

Value Objects:
- JobPayload: Prompt + generation parameters (immutable)
- Operation: One remote asynchronous generation unit

Aggregate Root:
- Job: Root entity; replaced as a whole record on every update
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, List, Dict, Any
from datetime import datetime
from enum import Enum
import uuid

from ..exceptions import InvalidTransitionError


class JobStatus(str, Enum):
    """
    Job status enum
    pending -> queued -> {getting-token|uploading} -> polling -> {done|error}
    """
    PENDING = "pending"
    QUEUED = "queued"
    GETTING_TOKEN = "getting-token"
    UPLOADING = "uploading"
    POLLING = "polling"
    DONE = "done"
    ERROR = "error"

    def is_terminal(self) -> bool:
        """Check if status is terminal (only reset leaves it)"""
        return self in (JobStatus.DONE, JobStatus.ERROR)

    def is_in_flight(self) -> bool:
        """Check if a worker or poller currently owns the job"""
        return self in (
            JobStatus.QUEUED,
            JobStatus.GETTING_TOKEN,
            JobStatus.UPLOADING,
            JobStatus.POLLING
        )

    def is_runnable(self) -> bool:
        """Check if the job may be picked up by a new run"""
        return not self.is_in_flight()


# error is reachable from every non-terminal state (stop, job-local failure)
VALID_JOB_TRANSITIONS = {
    JobStatus.PENDING: [JobStatus.PENDING, JobStatus.QUEUED, JobStatus.ERROR],
    JobStatus.QUEUED: [JobStatus.GETTING_TOKEN, JobStatus.UPLOADING, JobStatus.ERROR],
    JobStatus.GETTING_TOKEN: [JobStatus.POLLING, JobStatus.ERROR],
    JobStatus.UPLOADING: [JobStatus.POLLING, JobStatus.ERROR],
    JobStatus.POLLING: [JobStatus.POLLING, JobStatus.DONE, JobStatus.ERROR],
    JobStatus.DONE: [JobStatus.PENDING],
    JobStatus.ERROR: [JobStatus.PENDING],
}


def validate_transition(current: JobStatus, new: JobStatus) -> None:
    """
    Raise InvalidTransitionError nếu transition không hợp lệ
    """
    allowed = VALID_JOB_TRANSITIONS.get(current, [])
    if new not in allowed:
        raise InvalidTransitionError(
            f"Invalid job status transition: {current.value} -> {new.value}. "
            f"Valid transitions from {current.value}: {[s.value for s in allowed]}"
        )


class VideoType(str, Enum):
    TEXT_TO_VIDEO = "text-to-video"
    IMAGE_TO_VIDEO = "image-to-video"


VALID_RATIOS = ["16:9", "9:16"]
VALID_COUNTS = [1, 2, 4]


@dataclass(frozen=True)
class JobPayload:
    """
    Value Object cho generation parameters
    Opaque to the scheduler except for is_empty() and has_images()
    """
    prompt: str = ""
    video_type: VideoType = VideoType.TEXT_TO_VIDEO
    aspect_ratio: str = "16:9"
    count: int = 2
    start_image: Optional[str] = None  # data URL
    end_image: Optional[str] = None  # data URL
    model_key: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.video_type, VideoType):
            object.__setattr__(self, "video_type", VideoType(self.video_type))

        if self.aspect_ratio not in VALID_RATIOS:
            raise ValueError(f"aspect_ratio must be one of {VALID_RATIOS}")

        if self.count not in VALID_COUNTS:
            raise ValueError(f"count must be one of {VALID_COUNTS}")

        if self.video_type == VideoType.IMAGE_TO_VIDEO and not self.start_image:
            raise ValueError("image-to-video requires a start image")

    def is_empty(self) -> bool:
        return not self.prompt or not self.prompt.strip()

    def has_images(self) -> bool:
        return bool(self.start_image or self.end_image)

    def is_portrait(self) -> bool:
        return self.aspect_ratio == "9:16"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "video_type": self.video_type.value,
            "aspect_ratio": self.aspect_ratio,
            "count": self.count,
            "start_image": self.start_image,
            "end_image": self.end_image,
            "model_key": self.model_key,
        }

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> 'JobPayload':
        data = data or {}
        return JobPayload(
            prompt=data.get("prompt") or "",
            video_type=VideoType(data.get("video_type") or VideoType.TEXT_TO_VIDEO.value),
            aspect_ratio=data.get("aspect_ratio") or "16:9",
            count=data.get("count") or 2,
            start_image=data.get("start_image"),
            end_image=data.get("end_image"),
            model_key=data.get("model_key"),
        )


NO_MEDIA_URL = "No media URL"


class OperationStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"

    def is_terminal(self) -> bool:
        return self != OperationStatus.PENDING

    @staticmethod
    def from_remote(value: Optional[str]) -> 'OperationStatus':
        """
        Map remote status string (MEDIA_GENERATION_STATUS_*) to OperationStatus

        SUCCEEDED is treated as an alias of SUCCESSFUL; anything not
        recognised as terminal stays PENDING.
        """
        if not value:
            return OperationStatus.PENDING
        suffix = value.rsplit("_", 1)[-1].upper()
        if suffix in ("SUCCESSFUL", "SUCCEEDED"):
            return OperationStatus.SUCCESSFUL
        if suffix == "FAILED":
            return OperationStatus.FAILED
        return OperationStatus.PENDING


@dataclass(frozen=True)
class Operation:
    """
    Value Object cho một remote operation
    Immutable once SUCCESSFUL/FAILED
    """
    operation_name: str
    scene_id: str
    status: OperationStatus = OperationStatus.PENDING
    media_url: Optional[str] = None
    error: Optional[str] = None

    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def merge(self, update: 'Operation') -> 'Operation':
        """
        Apply a fresher remote status; terminal operations never change

        A SUCCESSFUL update without a media URL counts as FAILED.
        """
        if self.is_terminal():
            return self
        if update.status == OperationStatus.SUCCESSFUL and not update.media_url:
            return replace(self, status=OperationStatus.FAILED, media_url=None, error=NO_MEDIA_URL)
        return replace(
            self,
            status=update.status,
            media_url=update.media_url if update.status == OperationStatus.SUCCESSFUL else None,
            error=update.error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_name": self.operation_name,
            "scene_id": self.scene_id,
            "status": self.status.value,
            "media_url": self.media_url,
            "error": self.error,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'Operation':
        return Operation(
            operation_name=data["operation_name"],
            scene_id=data["scene_id"],
            status=OperationStatus(data.get("status") or OperationStatus.PENDING.value),
            media_url=data.get("media_url"),
            error=data.get("error"),
        )


def merge_operations(
    current: Tuple[Operation, ...],
    updates: List[Operation]
) -> Tuple[Operation, ...]:
    """
    Merge remote statuses into current operations by scene_id

    Updates for unknown scene ids are ignored.
    """
    by_scene = {op.scene_id: op for op in updates}
    return tuple(
        op.merge(by_scene[op.scene_id]) if op.scene_id in by_scene else op
        for op in current
    )


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Job:
    """
    Aggregate Root cho Job

    Every mutation produces a new Job (dataclasses.replace); the task store
    swaps whole records keyed by id.
    """
    id: str
    order: int
    payload: JobPayload
    status: JobStatus = JobStatus.PENDING
    status_text: str = ""
    account_id: Optional[str] = None
    operations: Tuple[Operation, ...] = ()
    results: Tuple[str, ...] = ()
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def successful_operations(self) -> List[Operation]:
        return [op for op in self.operations if op.status == OperationStatus.SUCCESSFUL]

    def pending_operations(self) -> List[Operation]:
        return [op for op in self.operations if not op.is_terminal()]

    def all_operations_terminal(self) -> bool:
        return bool(self.operations) and all(op.is_terminal() for op in self.operations)

    def with_status(self, status: JobStatus, **changes) -> 'Job':
        """
        Create new Job in status `status`

        Raises:
            InvalidTransitionError: Transition not allowed
        """
        validate_transition(self.status, status)
        return replace(self, status=status, updated_at=datetime.utcnow(), **changes)

    def reset(self) -> 'Job':
        """
        User "reset": back to pending with operations/results/error/account cleared
        """
        return self.with_status(
            JobStatus.PENDING,
            status_text="",
            operations=(),
            results=(),
            error=None,
            account_id=None,
        )

    def finalize(self) -> 'Job':
        """
        Finalize once every operation is terminal

        done if at least one SUCCESSFUL (results = their URLs), else error.
        """
        results = tuple(op.media_url for op in self.successful_operations() if op.media_url)
        if results:
            return self.with_status(
                JobStatus.DONE,
                results=results,
                status_text=f"{len(results)} done",
                error=None,
            )
        errors = [op.error for op in self.operations if op.error]
        return self.with_status(
            JobStatus.ERROR,
            results=(),
            status_text="All failed",
            error=errors[0] if errors else "All failed",
        )

    def fail(self, reason: str, status_text: Optional[str] = None) -> 'Job':
        """Mark job as error, preserving operations/results"""
        return self.with_status(
            JobStatus.ERROR,
            error=reason,
            status_text=status_text or reason,
        )

    @staticmethod
    def from_orm(orm_job) -> 'Job':
        """
        Convert từ SQLAlchemy ORM model sang Domain model
        """
        return Job(
            id=orm_job.id,
            order=orm_job.order,
            payload=JobPayload.from_dict(orm_job.payload),
            status=JobStatus(orm_job.status),
            status_text=orm_job.status_text or "",
            account_id=orm_job.account_id,
            operations=tuple(Operation.from_dict(op) for op in (orm_job.operations or [])),
            results=tuple(orm_job.results or []),
            error=orm_job.error,
            created_at=orm_job.created_at or datetime.utcnow(),
            updated_at=orm_job.updated_at or datetime.utcnow(),
        )

    def to_orm_dict(self) -> dict:
        """
        Convert to dict for SQLAlchemy insert/update
        """
        return {
            "id": self.id,
            "order": self.order,
            "payload": self.payload.to_dict(),
            "status": self.status.value,
            "status_text": self.status_text,
            "account_id": self.account_id,
            "operations": [op.to_dict() for op in self.operations],
            "results": list(self.results),
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __str__(self) -> str:
        return f"Job(#{self.order}, id={self.id[:8]}, status={self.status.value})"
