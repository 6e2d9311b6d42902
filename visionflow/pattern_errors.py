from __future__ import annotations


class PatternAnalysisError(RuntimeError):
    code = "analysis_failed"
    user_message = "Pattern analysis failed. Please try again."

    def to_detail(self) -> dict[str, str]:
        return {
            "code": self.code,
            "message": self.user_message,
            "error": str(self),
        }


class ConfigurationError(PatternAnalysisError):
    code = "configuration"
    user_message = "AI service is not configured. Please check your API key."


class ModelUnavailableError(PatternAnalysisError):
    code = "model_unavailable"
    user_message = "The AI service is unavailable right now. Please try again."

    def __init__(self, message: str, *, attempts: int, last_error: Exception | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class EmptyResponseError(PatternAnalysisError):
    code = "empty_response"
    user_message = "No response received from the AI model. Please try again."


class MalformedResponseError(PatternAnalysisError):
    TRUNCATED = "truncated"
    GARBLED = "garbled"

    def __init__(self, message: str, *, kind: str) -> None:
        super().__init__(message)
        self.kind = kind if kind in {self.TRUNCATED, self.GARBLED} else self.GARBLED

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"malformed_response_{self.kind}"

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.kind == self.TRUNCATED:
            return "Response too long. Please try with a simpler image."
        return "The AI returned an unreadable response. Please try again."


class InvalidStructureError(PatternAnalysisError):
    code = "invalid_structure"
    user_message = "The AI response had an unexpected structure. Please try again."


class ImagePreparationError(PatternAnalysisError):
    code = "image_preparation"
    user_message = "Failed to process image for analysis. Please try a different image."
