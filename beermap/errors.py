class ExtractionError(ValueError):
    """A single record could not yield values; contained by the extractor."""


class ParseError(ExtractionError):
    pass


class PathError(ExtractionError):
    pass


class VariantError(RuntimeError):
    def __init__(self, variant: str, cause: BaseException) -> None:
        super().__init__(f"variant '{variant}' failed: {cause}")
        self.variant = variant
        self.cause = cause


class SessionError(RuntimeError):
    pass
