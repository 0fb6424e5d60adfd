from typing import List, Optional, Sequence


class GeneratorError(RuntimeError):
    pass


class ConfigError(GeneratorError):
    pass


class MissingConfigError(ConfigError):
    def __init__(self, missing_keys: Sequence[str]) -> None:
        self.missing_keys: List[str] = list(missing_keys)
        super().__init__(f"Missing required environment variables: {', '.join(self.missing_keys)}")


class ConnectivityError(GeneratorError):
    def __init__(self, failed_checks: Sequence[str]) -> None:
        self.failed_checks: List[str] = list(failed_checks)
        super().__init__(f"Connection tests failed: {', '.join(self.failed_checks)}")


class NotFoundError(GeneratorError):
    def __init__(self, record_id: object) -> None:
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class StoreError(GeneratorError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProviderError(GeneratorError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)
