"""Error taxonomy for the scheduled fetch pipeline"""


class ScheduledFetchError(Exception):
    """Fatal setup-phase error; aborts the run before any batch starts"""
    def __init__(self, message: str, status_code: int = 500, code: str = "SCHEDULED_FETCH_FAILED"):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class ValidationError(ScheduledFetchError):
    """Missing/invalid input, unknown seller account or unreachable database"""
    def __init__(self, message: str, status_code: int = 400, code: str = "VALIDATION_FAILED"):
        super().__init__(message, status_code, code)


class ConfigurationError(ScheduledFetchError):
    """Unsupported region/country or missing endpoint mapping"""
    def __init__(self, message: str, status_code: int = 400, code: str = "CONFIGURATION_ERROR"):
        super().__init__(message, status_code, code)


class CredentialError(ScheduledFetchError):
    """Cloud credentials or access tokens could not be resolved"""
    def __init__(self, message: str, status_code: int = 500, code: str = "CREDENTIALS_UNAVAILABLE"):
        super().__init__(message, status_code, code)


class JobSkip(Exception):
    """Raised by an argument builder when a job cannot run for this seller"""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
