"""Core application exception classes.

This module provides a centralized exception hierarchy for all CRM-specific
errors. All custom exceptions inherit from CrmError, enabling:
- Consistent error handling across services and API routes
- Mapping of error categories to HTTP status codes in one place
- Structured logging with exception context

Exception Hierarchy:
    CrmError (base)
    +-- NotFoundError (entity missing under the given team scope)
    +-- InvariantViolationError (operation would break a domain invariant)
    +-- CrmValidationError (malformed input rejected at the boundary)
    |   +-- FilterValidationError
    +-- ExternalDependencyError (lookup/backing service failures)
    |   +-- GeoLookupError
    +-- ConfigurationError (missing/invalid configuration)
"""


class CrmError(Exception):
    """Base exception for all CRM application errors.

    Subclasses set ``code`` (machine-readable) and ``status_code`` (the HTTP
    status the API layer responds with).

    Example:
        try:
            await service.add_contacts_to_list(...)
        except CrmError as e:
            logger.warning("contact_list_error", error=str(e))
            raise
    """

    code: str = "crm_error"
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# --- Category Exceptions ---


class NotFoundError(CrmError):
    """Raised when an entity does not exist within the requested team.

    Scoping mismatches (a group id belonging to another team, for example)
    are reported as not found rather than forbidden.
    """

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: object | None = None):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvariantViolationError(CrmError):
    """Raised before any write when an operation would break an invariant.

    Examples: deleting the default group, assigning users to the default
    group directly, mutating membership of a smart list.
    """

    code = "invariant_violation"
    status_code = 409


class CrmValidationError(CrmError):
    """Raised when input is malformed and cannot be evaluated."""

    code = "validation_error"
    status_code = 422


class FilterValidationError(CrmValidationError):
    """Raised when a contact filter payload has an invalid shape.

    Incomplete filters (valid shape, empty required value) are not errors;
    the evaluator skips them.
    """

    code = "invalid_filter"

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index


class ExternalDependencyError(CrmError):
    """Base exception for failures of backing lookups.

    Callers decide whether the failure is fatal; the distance filter treats
    it as exclusion.
    """

    code = "external_dependency_error"
    status_code = 503


class GeoLookupError(ExternalDependencyError):
    """Raised when postal-code centroid data cannot be queried."""

    code = "geo_lookup_error"


class ConfigurationError(CrmError):
    """Exception for missing or invalid configuration.

    This exception typically indicates a deployment/setup issue rather
    than a runtime error.
    """

    code = "configuration_error"
