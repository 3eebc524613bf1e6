"""Render a live form to HTML, one control per field in declaration order"""
from typing import Optional

from jinja2 import Template
from markupsafe import Markup

from ..schemas.form import FieldKind
from .form_validator import FormSession, TERMS_ERROR_KEY

# Input types for the kinds rendered as a single <input>
INPUT_TYPES = {
    FieldKind.TEXT.value: "text",
    FieldKind.EMAIL.value: "email",
    FieldKind.PHONE.value: "tel",
    FieldKind.NUMBER.value: "number",
    FieldKind.DATE.value: "date",
}

FORM_TEMPLATE = Template("""
<form id="widget-form-{{ form.id }}" class="widget-form" data-form-id="{{ form.id }}" novalidate>
  <div class="widget-form-header">
    <h3 class="widget-form-title">{{ form.title }}</h3>
    {% if form.description %}<p class="widget-form-description">{{ form.description }}</p>{% endif %}
  </div>
  {% for field in form.fields %}
  {% set value = values.get(field.id) %}
  {% set error = errors.get(field.id) %}
  <div class="widget-form-field{% if error %} has-error{% endif %}" data-field-id="{{ field.id }}">
    <label for="{{ form.id }}-{{ field.id }}">{{ field.label }}{% if field.required %}<span class="widget-form-required">*</span>{% endif %}</label>
    {% if field.kind.value == 'textarea' %}
    <textarea id="{{ form.id }}-{{ field.id }}" name="{{ field.id }}" rows="3" placeholder="{{ field.placeholder or '' }}">{{ value or '' }}</textarea>
    {% elif field.kind.value == 'select' %}
    <select id="{{ form.id }}-{{ field.id }}" name="{{ field.id }}">
      <option value="">{{ field.placeholder or 'Select an option' }}</option>
      {% for option in field.options or [] %}
      <option value="{{ option }}"{% if value == option %} selected{% endif %}>{{ option }}</option>
      {% endfor %}
    </select>
    {% elif field.kind.value == 'radio' %}
    {% for option in field.options or [] %}
    <label class="widget-form-option"><input type="radio" name="{{ field.id }}" value="{{ option }}"{% if value == option %} checked{% endif %}> {{ option }}</label>
    {% endfor %}
    {% elif field.kind.value == 'checkbox' %}
    {% for option in field.options or [] %}
    <label class="widget-form-option"><input type="checkbox" name="{{ field.id }}" value="{{ option }}"{% if value and option in value %} checked{% endif %}> {{ option }}</label>
    {% endfor %}
    {% else %}
    <input id="{{ form.id }}-{{ field.id }}" type="{{ input_types[field.kind.value] }}" name="{{ field.id }}" placeholder="{{ field.placeholder or '' }}" value="{{ value if value is not none else '' }}">
    {% endif %}
    {% if error %}<p class="widget-form-error">{{ error }}</p>{% endif %}
  </div>
  {% endfor %}
  {% if form.require_terms_acceptance %}
  <div class="widget-form-terms{% if terms_error %} has-error{% endif %}">
    {% if form.terms_text %}<p class="widget-form-terms-text">{{ form.terms_text }}</p>{% endif %}
    <label><input type="checkbox" name="terms_accepted"{% if terms_accepted %} checked{% endif %}> I accept the terms and conditions<span class="widget-form-required">*</span></label>
    {% if terms_error %}<p class="widget-form-error">{{ terms_error }}</p>{% endif %}
  </div>
  {% endif %}
  <button type="submit" style="background: {{ theme_color }};"{% if submitting %} disabled{% endif %}>{% if submitting %}Submitting...{% else %}Submit{% endif %}</button>
</form>
""", autoescape=True, trim_blocks=True, lstrip_blocks=True)


def render_form(session: FormSession, theme_color: str = "#3b82f6", submitting: bool = False) -> Markup:
    """Render the session's form with its current values and inline errors"""
    html = FORM_TEMPLATE.render(
        form=session.schema,
        values=session.values,
        errors=session.errors,
        terms_accepted=session.terms_accepted,
        terms_error=session.errors.get(TERMS_ERROR_KEY),
        input_types=INPUT_TYPES,
        theme_color=theme_color,
        submitting=submitting,
    )
    return Markup(html.strip())


def render_form_text(session: FormSession) -> str:
    """Plain-text rendering for terminal front ends"""
    lines = [session.schema.title]
    if session.schema.description:
        lines.append(session.schema.description)
    for index, spec in enumerate(session.schema.fields, start=1):
        marker = " *" if spec.required else ""
        hint = f" [{', '.join(spec.options)}]" if spec.options else ""
        lines.append(f"  {index}. {spec.label}{marker} ({spec.kind.value}){hint}")
        error: Optional[str] = session.errors.get(spec.id)
        if error:
            lines.append(f"     ! {error}")
    if session.schema.require_terms_acceptance:
        if session.schema.terms_text:
            lines.append(f"  Terms: {session.schema.terms_text}")
        if TERMS_ERROR_KEY in session.errors:
            lines.append(f"     ! {session.errors[TERMS_ERROR_KEY]}")
    return "\n".join(lines)
