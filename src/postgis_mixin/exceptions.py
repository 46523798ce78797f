#    Copyright 2025 FAO
#
#    Licensed under the Apache License, Version 2.0 (the "License");
#    you may not use this file except in compliance with the License.
#    You may obtain a copy of the License at
#
#        http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS,
#    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#    See the License for the specific language governing permissions and
#    limitations under the License.
#
#    Author: Carlo Cancellieri (ccancellieri@gmail.com)
#    Company: FAO, Viale delle Terme di Caracalla, 00100 Rome, Italy
#    Contact: copyright@fao.org - http://fao.org/contact-us/terms/en/

"""
Exception hierarchy for the PostGIS mixin.

Database failures are mapped from their PostgreSQL error code to a specific
subclass so callers can fail fast. Geometry configuration and validation
errors are separate roots: the first is fatal at service start, the second is
raised per request and carries the offending field.
"""

from typing import Any, Dict, Optional


class DatabaseError(Exception):
    """Base class for all database-related exceptions."""
    def __init__(self, message, original_exception=None):
        super().__init__(message)
        self.original_exception = original_exception
        self.details = str(original_exception) if original_exception else "No additional details."

    def __str__(self):
        return f"{super().__str__()} (Details: {self.details})"

class QueryExecutionError(DatabaseError):
    """Raised for general or unrecognized errors during query execution."""
    pass

class DatabaseConnectionError(DatabaseError):
    """Raised when the connection to the database cannot be established or is lost."""
    pass

class UndefinedFunctionError(DatabaseError):
    """Raised when a spatial function is missing, usually PostGIS not installed (pgcode: 42883)."""
    pass

class UndefinedColumnError(DatabaseError):
    """Raised when a geometry field points to a column that does not exist (pgcode: 42703)."""
    pass

class TableNotFoundError(DatabaseError):
    """Raised when a query references a table that does not exist (pgcode: 42P01)."""
    pass

class InvalidParameterValueError(DatabaseError):
    """Raised when PostGIS rejects a geometry or SRID argument (pgcode: 22023)."""
    pass

class InternalGeometryError(DatabaseError):
    """Raised on PostGIS internal errors such as unparseable GeoJSON (pgcode: XX000)."""
    pass


# Mapping from PostgreSQL error codes (pgcode) to our custom exception classes.
# See: https://www.postgresql.org/docs/current/errcodes-appendix.html
PGCODE_EXCEPTION_MAP = {
    '42883': UndefinedFunctionError,
    '42703': UndefinedColumnError,
    '42P01': TableNotFoundError,
    '22023': InvalidParameterValueError,
    'XX000': InternalGeometryError,
    # Codes for connection issues
    '08000': DatabaseConnectionError,
    '08003': DatabaseConnectionError,
    '08006': DatabaseConnectionError,
}


class GeometryConfigurationError(ValueError):
    """Raised at bind time when a field's geometry configuration is not supported."""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class FieldValidationError(ValueError):
    """
    Raised when a write payload fails geometry validation.

    Carries the field name, the rejected value and the message returned by the
    field's validator, so the host can report exactly which field failed.
    """
    type = "VALIDATION_ERROR"

    def __init__(self, field: str, value: Any, message: str):
        super().__init__(f"Field '{field}': {message}")
        self.field = field
        self.value = value
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "field": self.field,
            "value": self.value,
            "message": self.message,
        }
