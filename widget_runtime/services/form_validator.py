"""
Local validation for server-supplied forms.

Validation runs over every field at submit time, so required fields the
visitor never touched are reported too. Each field reports at most one error,
checked in this order: required, email, phone, min length, max length, pattern.
"""
import re
from typing import Any, Dict, List, Optional

from ..core.exceptions import FormValidationError
from ..core.logging_config import get_logger, log_form_submission
from ..schemas.form import FieldKind, FieldSpec, FormSchema, FormSubmission, TEXT_LIKE_KINDS

logger = get_logger("form_validator")

TERMS_ERROR_KEY = "terms"
TERMS_ERROR_MESSAGE = "You must accept the terms and conditions to proceed"

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{0,15}$')
PHONE_SEPARATORS = re.compile(r'[\s\-\(\)]')


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list)) and len(value) == 0:
        return True
    return False


def validate_field(field: FieldSpec, value: Any) -> Optional[str]:
    """Return the error message for one field, or None if the value is acceptable"""
    if _is_empty(value):
        if field.required:
            return f"{field.label} is required"
        return None

    if field.kind == FieldKind.EMAIL and not EMAIL_PATTERN.match(str(value)):
        return "Please enter a valid email address"

    if field.kind == FieldKind.PHONE and not PHONE_PATTERN.match(PHONE_SEPARATORS.sub("", str(value))):
        return "Please enter a valid phone number"

    rules = field.validation
    if rules is None or field.kind not in TEXT_LIKE_KINDS:
        return None

    text = str(value)
    if rules.min and len(text) < rules.min:
        return f"{field.label} must be at least {rules.min} characters"

    if rules.max and len(text) > rules.max:
        return f"{field.label} must be no more than {rules.max} characters"

    if rules.pattern:
        try:
            matched = re.search(rules.pattern, text)
        except re.error as e:
            # Broken pattern in the form config, not the visitor's fault
            logger.warning(f"Ignoring invalid pattern on field '{field.id}': {e}")
            return None
        if not matched:
            return f"{field.label} format is invalid"

    return None


def validate_submission(
    schema: FormSchema,
    values: Dict[str, Any],
    terms_accepted: bool = False,
) -> Dict[str, str]:
    """Validate every field of the schema; returns field id -> error message"""
    errors: Dict[str, str] = {}
    for spec in schema.fields:
        error = validate_field(spec, values.get(spec.id))
        if error:
            errors[spec.id] = error

    if schema.require_terms_acceptance and not terms_accepted:
        errors[TERMS_ERROR_KEY] = TERMS_ERROR_MESSAGE

    return errors


class FormSession:
    """Values, errors and terms state of one live form instance"""

    def __init__(self, schema: FormSchema):
        self.schema = schema
        self.values: Dict[str, Any] = {}
        self.errors: Dict[str, str] = {}
        self.terms_accepted = False

    def _field(self, field_id: str) -> FieldSpec:
        spec = self.schema.get_field(field_id)
        if spec is None:
            raise ValueError(f"Form '{self.schema.id}' has no field '{field_id}'")
        return spec

    def set_value(self, field_id: str, value: Any) -> None:
        self._field(field_id)
        self.values[field_id] = value
        # Editing a field clears its error until the next submit
        self.errors.pop(field_id, None)

    def toggle_option(self, field_id: str, option: str) -> List[str]:
        """Add or remove one option of a checkbox field; returns the selection"""
        spec = self._field(field_id)
        if spec.kind != FieldKind.CHECKBOX:
            raise ValueError(f"Field '{field_id}' is not a checkbox field")

        selected = list(self.values.get(field_id) or [])
        if option in selected:
            selected.remove(option)
        else:
            selected.append(option)
        self.set_value(field_id, selected)
        return selected

    def accept_terms(self, accepted: bool = True) -> None:
        self.terms_accepted = accepted
        self.errors.pop(TERMS_ERROR_KEY, None)

    def validate(self) -> Dict[str, str]:
        self.errors = validate_submission(self.schema, self.values, self.terms_accepted)
        return self.errors

    @property
    def is_valid(self) -> bool:
        return not self.validate()

    def build_submission(self) -> FormSubmission:
        """
        Validate and assemble the submission.

        Raises:
            FormValidationError: at least one field (or the terms box) is invalid
        """
        errors = self.validate()
        log_form_submission(self.schema.id, len(self.schema.fields), valid=not errors)
        if errors:
            raise FormValidationError(self.schema.id, dict(errors))

        values = {
            spec.id: self.values[spec.id]
            for spec in self.schema.fields
            if not _is_empty(self.values.get(spec.id))
        }
        return FormSubmission(
            form_id=self.schema.id,
            values=values,
            terms_accepted=True if self.schema.require_terms_acceptance else None,
        )
