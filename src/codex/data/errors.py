"""Custom exceptions for story loading and validation."""


class DataError(Exception):
    """Base exception for the data layer."""


class DefinitionLoadError(DataError):
    """Raised when a story file is missing or is not valid YAML."""


class DefinitionError(DataError):
    """Raised when a story definition is malformed or structurally invalid."""
