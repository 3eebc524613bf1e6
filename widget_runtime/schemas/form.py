from pydantic import BaseModel, Field, AliasChoices, field_validator
from typing import Dict, Any, List, Optional, Union
from enum import Enum


class FieldKind(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    NUMBER = "number"
    DATE = "date"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"


# Kinds whose value is free text and subject to length bounds
TEXT_LIKE_KINDS = {
    FieldKind.TEXT,
    FieldKind.EMAIL,
    FieldKind.PHONE,
    FieldKind.NUMBER,
    FieldKind.TEXTAREA,
}


class FieldValidation(BaseModel):
    min: Optional[int] = None
    max: Optional[int] = None
    pattern: Optional[str] = None


class FieldSpec(BaseModel):
    id: str
    kind: FieldKind = Field(validation_alias=AliasChoices("kind", "type"))
    label: str
    placeholder: Optional[str] = None
    required: bool = False
    options: Optional[List[str]] = None
    validation: Optional[FieldValidation] = None

    class Config:
        populate_by_name = True


class FormSchema(BaseModel):
    """A form pushed down by the server in the middle of a conversation"""
    id: str
    title: str = Field(validation_alias=AliasChoices("title", "form_title", "form_name"))
    description: Optional[str] = Field(None, validation_alias=AliasChoices("description", "form_description"))
    fields: List[FieldSpec] = []
    success_message: Optional[str] = None
    require_terms_acceptance: bool = False
    terms_text: Optional[str] = Field(None, validation_alias=AliasChoices("terms_text", "terms_and_conditions"))

    class Config:
        populate_by_name = True

    @field_validator("fields")
    @classmethod
    def field_ids_unique(cls, fields: List[FieldSpec]) -> List[FieldSpec]:
        seen = set()
        for spec in fields:
            if spec.id in seen:
                raise ValueError(f"Duplicate field id '{spec.id}'")
            seen.add(spec.id)
        return fields

    def get_field(self, field_id: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.id == field_id:
                return spec
        return None


FieldValue = Union[str, int, float, bool, List[str]]


class FormSubmission(BaseModel):
    """Locally validated values, ready to be sent exactly once"""
    form_id: str
    values: Dict[str, FieldValue] = {}
    terms_accepted: Optional[bool] = None

    def to_submitted_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.values)
        if self.terms_accepted is not None:
            data["terms_accepted"] = self.terms_accepted
        return data
