"""Domain errors raised by services and rendered as JSON by the error handlers."""

from __future__ import annotations


class SupplyHubError(RuntimeError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"error": self.message}


class NotFound(SupplyHubError):
    status_code = 404


class InvalidState(SupplyHubError):
    status_code = 409


class PermissionDenied(SupplyHubError):
    status_code = 403


class ValidationError(SupplyHubError, ValueError):
    status_code = 400

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = list(details or [])

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        if self.details:
            payload["details"] = self.details
        return payload


class InsufficientStock(SupplyHubError):
    """Raised when a supply-out approval would drive one or more items negative.

    ``shortages`` holds one entry per offending line so the caller can report
    every item at once instead of failing on the first.
    """

    status_code = 409

    def __init__(self, shortages: list[dict[str, object]]):
        self.shortages = list(shortages)
        super().__init__(self._build_message(self.shortages))

    @staticmethod
    def _build_message(shortages: list[dict[str, object]]) -> str:
        if len(shortages) == 1:
            entry = shortages[0]
            return (
                f'Insufficient quantity for "{entry["name"]}". '
                f'Requested: {entry["requested"]}, Available: {entry["available"]}'
            )
        lines = [
            f'- "{entry["name"]}": Requested {entry["requested"]}, '
            f'Available {entry["available"]}'
            for entry in shortages
        ]
        return "Insufficient quantities for multiple items:\n" + "\n".join(lines)

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["shortages"] = self.shortages
        return payload


class StorageError(SupplyHubError):
    status_code = 502
