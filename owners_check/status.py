class ExitCodes:
    SUCCESS = 0
    ERROR = 1
    CHECK_FAILED = 2
    DECLARATION_ERRORS = 3
