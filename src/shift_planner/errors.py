"""Exception hierarchy for Shift Planner"""


class ShiftPlannerError(Exception):
    """Base exception for shift planner operations"""
    pass


class FormatError(ShiftPlannerError):
    """Raised when shift or break times are malformed"""
    pass


class ConflictError(ShiftPlannerError):
    """Raised when an employee would be scheduled twice on one date"""
    pass


class UnresolvedReferenceError(ShiftPlannerError):
    """Raised when a location, department or employee id cannot be resolved"""
    pass


class PersistenceError(ShiftPlannerError):
    """Base exception for persistent store failures"""
    pass


class DataFileCorruptedError(PersistenceError):
    """Raised when the data file is corrupted"""
    pass


class DataSaveError(PersistenceError):
    """Raised when saving data fails"""
    pass


class DataValidationError(ShiftPlannerError):
    """Raised when entity data breaks a model rule"""
    pass


class EmptyTemplateError(ShiftPlannerError):
    """Raised when a template would contain no assignments"""
    pass


class ImportFormatError(ShiftPlannerError):
    """Raised when a CSV payload lacks a header row or required columns"""
    pass
