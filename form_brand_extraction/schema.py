from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

FieldKind = Literal["text", "email", "date", "phone", "select", "radio", "checkbox", "html"]

# The model does not report a calibrated confidence; this is a fixed stand-in.
PLACEHOLDER_CONFIDENCE = 85


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class FieldOption(_Lenient):
    value: Any
    label: Optional[str] = None


class FieldConfig(_Lenient):
    required: bool = False
    field_type: FieldKind = Field(alias="fieldType")
    placeholder: Optional[str] = None
    options: Optional[List[FieldOption]] = None
    layout: Optional[str] = None


class PropertySpec(_Lenient):
    type: str
    title: Optional[str] = None
    field_config: FieldConfig = Field(alias="x-field-config")


class LayoutColumn(_Lenient):
    width: Optional[str] = None
    fields: List[str] = Field(default_factory=list)


class LayoutRow(_Lenient):
    type: str = "row"
    columns: List[LayoutColumn] = Field(default_factory=list)


class FormSection(_Lenient):
    section_id: Optional[str] = Field(default=None, alias="sectionId")
    title: Optional[str] = None
    description: Optional[str] = None
    layout: List[LayoutRow] = Field(default_factory=list)


class FormPage(_Lenient):
    page_id: Optional[str] = Field(default=None, alias="pageId")
    title: Optional[str] = None
    sections: List[FormSection] = Field(default_factory=list)


class FormConfig(_Lenient):
    form_id: Optional[str] = Field(default=None, alias="formId")
    version: Optional[str] = None
    pages: List[FormPage] = Field(default_factory=list)


class FormSchema(_Lenient):
    """
    The form schema document the model is asked to produce.

    Unknown keys are kept; only the parts the form renderer relies on are typed.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    form_config: Optional[FormConfig] = Field(default=None, alias="x-form-config")
    properties: Dict[str, PropertySpec] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class SchemaSummary:
    field_count: int
    required_count: int
    page_count: int
    section_count: int


def summarize(data: Any) -> Optional[SchemaSummary]:
    """Summarize a parsed schema, or None when it does not match the contract."""
    try:
        schema = FormSchema.model_validate(data)
    except ValidationError as exc:
        logger.warning("Schema does not match the form contract: %s", exc.error_count())
        return None
    pages = schema.form_config.pages if schema.form_config else []
    return SchemaSummary(
        field_count=len(schema.properties),
        required_count=len(schema.required),
        page_count=len(pages),
        section_count=sum(len(page.sections) for page in pages),
    )


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def timestamp_form_id(clock: Callable[[], float] = time.time) -> str:
    return f"form-schema-{int(clock() * 1000)}"


def derive_form_id(data: Any, clock: Callable[[], float] = time.time) -> str:
    """
    Pick a form identifier for a parsed schema.

    Order is fixed: x-form-config.formId, then a slug of the title, then a
    timestamp-based id.
    """
    if isinstance(data, dict):
        form_config = data.get("x-form-config")
        if isinstance(form_config, dict):
            form_id = form_config.get("formId")
            if isinstance(form_id, str) and form_id.strip():
                logger.info("Found formId in x-form-config: %s", form_id)
                return form_id.strip()

        title = data.get("title")
        if isinstance(title, str):
            slug = slugify(title)
            if slug:
                logger.info("Generated formId from title: %s", slug)
                return slug

    fallback = timestamp_form_id(clock)
    logger.warning("No formId or title found in schema, using generated id %s", fallback)
    return fallback


@dataclass(frozen=True)
class ExtractedSchema:
    schema: str
    data: Any
    form_id: str
    confidence: int
    notes: str
    provider: str
    page_count: int
    summary: Optional[SchemaSummary] = field(default=None)
