"""
Domain exceptions

Job-local errors end up in a job's error field, account-local errors
exclude an account from a run, and only NoSessionsAvailable aborts a run.
"""


class FlowBatchError(Exception):
    """Base class for all scheduler errors"""
    pass


# ========== Session lifecycle (account-local) ==========

class SessionStartError(FlowBatchError):
    """Execution environment failed to start after bounded retries"""
    pass


class ProviderUnavailableError(SessionStartError):
    """GPM-Login API not reachable on any candidate port"""
    pass


class ExpiredCredentialError(FlowBatchError):
    """Challenge widget absent after navigation - account needs re-login"""

    def __init__(self, account_id: str, message: str = "Cookie expired"):
        self.account_id = account_id
        super().__init__(message)


class SessionLostError(FlowBatchError):
    """Execution environment stopped answering"""
    pass


class SessionBusyError(FlowBatchError):
    """Token brokering attempted on a session that is not ready"""
    pass


class PageActionError(FlowBatchError):
    """Navigation or in-page script failed while the browser still answers"""
    pass


# ========== Job-local ==========

class ChallengeUnavailableError(FlowBatchError):
    """Anti-bot challenge token could not be solved"""
    pass


class TokenAcquisitionError(FlowBatchError):
    """No auth token after all extraction strategies"""
    pass


class SubmissionRejected(FlowBatchError):
    """Remote service refused the generation request"""
    pass


class UploadError(FlowBatchError):
    """Media upload refused by the remote service"""
    pass


class PollTimeoutOrNetworkError(FlowBatchError):
    """A single poll round timed out or failed at the network level"""
    pass


class InvalidTransitionError(FlowBatchError, ValueError):
    """Job status transition not allowed by the state machine"""
    pass


class JobNotFoundError(FlowBatchError):
    pass


class AccountNotFoundError(FlowBatchError):
    pass


# ========== Run-level ==========

class NoSessionsAvailable(FlowBatchError):
    """Every selected account failed session acquisition"""
    pass


class RunInProgressError(FlowBatchError):
    pass
