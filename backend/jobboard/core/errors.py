class InputValidationError(ValueError):
    """
    Raised by store operations when user input is missing or out of range.
    Nothing has been mutated when this is raised.
    """

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields or [])

    def to_dict(self) -> dict:
        return {"detail": self.message, "fields": self.fields}
