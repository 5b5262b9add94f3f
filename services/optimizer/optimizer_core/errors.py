from __future__ import annotations


class OptimizerError(Exception):
    def __init__(self, detail: str, status_code: int = 400) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class InputError(OptimizerError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=400)


class CredentialError(OptimizerError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=401)


class GenerationFailure(OptimizerError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail, status_code=502)


class PipelineCancelled(OptimizerError):
    def __init__(self, detail: str = "request_cancelled") -> None:
        super().__init__(detail, status_code=499)
