from typing import Optional


class ReleaseNotesError(Exception):
    # base exception for all application-specific errors.
    pass

class ConfigError(ReleaseNotesError):
    # errors related to configuration.
    pass

class InputError(ReleaseNotesError):
    # errors reading templates, data or helper files.
    pass

class OutputError(ReleaseNotesError):
    # errors during output operations.
    pass

class TemplateError(ReleaseNotesError):
    # errors related to template compilation or rendering.
    pass

class ExpressionError(TemplateError):
    # malformed or failing predicate / eval expression.
    def __init__(self, message: str, expression: Optional[str] = None):
        super().__init__(message)
        self.expression = expression

class HelperDefinitionError(TemplateError):
    # a custom helper definition that could not be compiled.
    def __init__(self, message: str, helper_name: Optional[str] = None):
        super().__init__(message)
        self.helper_name = helper_name
