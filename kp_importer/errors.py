class ImportAbort(Exception):
    """Fatal, non-SQL import failure: the whole run is rolled back."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
